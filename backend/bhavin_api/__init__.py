"""
Bhavin API — Application Package Initializer
=============================================

What: Marks the `bhavin_api` directory as a Python package.
Who:  Used by uvicorn (`bhavin_api.main:create_app --factory`), the
      `bhavin-api` console script and pytest.

Architecture Note:
    The service is a single request pipeline:

    ┌─────────────────────────────────────┐
    │      Boundary (fallback, logs)      │  ← one response per request
    ├─────────────────────────────────────┤
    │     Stages (middleware, ordered)    │  ← headers, CORS, body, cookies
    ├─────────────────────────────────────┤
    │    Routes (greeting, /api/auth)     │  ← terminal handlers, mounts
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
