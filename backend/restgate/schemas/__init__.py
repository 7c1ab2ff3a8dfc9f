"""
RestGate Backend — Schemas
==========================

Pydantic models: request-body schemas per resource (resources.py) and the
response envelopes every endpoint renders (envelope.py).
"""
