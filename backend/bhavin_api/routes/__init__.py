# Routes package init
"""
Bhavin API — Route Table
=========================

Route Inventory:
    - home.py:  GET  /                 (greeting)
    - auth.py:  POST /api/auth/sign-up (mounted authentication route group)
                POST /api/auth/sign-in
                POST /api/auth/sign-out
    - POST /api/auth itself          handed to the auth group as its "/"
    - anything else                    404

The authentication group is mounted as its own sub-application under
/api/auth and owns its internal routes; create_app() accepts any ASGI app in
its place.
"""
