"""
RestGate Backend — Application Package Initializer
==================================================

What: Marks the `restgate` directory as a Python package.
Why:  Enables module imports like `from restgate.config import Settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    This backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │   Middleware (Rate Limit, Req ID)   │  ← admission, tracing
    ├─────────────────────────────────────┤
    │       Routes (API Layer + Auth)     │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Dispatcher, Validator,  │  ← CRUD orchestration
    │   Query Parser, Formatter)          │
    ├─────────────────────────────────────┤
    │      Model Stores (SQLAlchemy)      │  ← per-model operations
    └─────────────────────────────────────┘

    Adding a resource means adding an ORM model, its input schemas and one
    registry entry; no route or handler code changes.
"""

__version__ = "1.0.0"
