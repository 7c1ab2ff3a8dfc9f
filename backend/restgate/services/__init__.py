# Services package init
"""
RestGate Backend — Services Layer
=================================

What:  Everything between the HTTP routes and the database.

Service Inventory:
    - RouteRegistry:      public route name → ResourceKey
    - QueryParser:        page / limit / sort / filter → QuerySpec
    - PayloadValidator:   (ResourceKey, OperationKind, body) → ValidationOutcome
    - ModelStore:         per-model count/find/create/update/delete (SQLAlchemy)
    - ResourceDispatcher: the CRUD state machine tying the above together
    - ResponseFormatter:  envelope → JSON or XML
    - AuthGate / RateLimitGate: request admission ahead of the dispatcher

None of these are module-level singletons: `restgate.dependencies.build_services()`
constructs each once and the app carries them on `app.state.services`.
"""
