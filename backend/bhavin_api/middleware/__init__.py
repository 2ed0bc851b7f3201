# Middleware package init
"""
Bhavin API — Middleware Package
================================

What:  The ordered request stages every request passes through.

Middleware Chain (order is part of the contract):
    Request → [Boundary] → [Security Headers] → [CORS] → [Body Parser]
            → [Cookie Parser] → [Access Log] → [Security Checks] → Routes

    - Boundary: request ID, top-level 500 fallback, completion signal
    - Security Headers: browser-hardening headers on every response
    - CORS: Starlette's CORSMiddleware (answers preflight requests)
    - Body Parser: JSON / URL-encoded bodies into request.state.body
    - Cookie Parser: request.state.cookies / request.state.signed_cookies
    - Access Log: stamps timing; the line is written by the boundary
    - Security Checks: pluggable policies, may reject with 4xx

create_app() passes the list to Starlette in this order, and Starlette runs
`middleware=[...]` first-to-last, so registration order is execution order.
"""
