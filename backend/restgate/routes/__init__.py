# Routes package init
"""
RestGate Backend — API Routes Package
=====================================

Route Inventory:
    - resources.py: GET|POST /api/{version}/{route}
                    GET|PUT|PATCH|DELETE /api/{version}/{route}/{id}
    - health.py:    GET /api/health
    - auth.py:      GET /api/auth/session

Routes are THIN: they translate HTTP into a DispatchRequest (or a gate call)
and render the resulting envelope. CRUD semantics live in the dispatcher.
"""
