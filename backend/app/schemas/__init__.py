"""Pydantic Schemas — validation at the API and agent-event boundaries.

Invariants:
    - Schemas validate at system boundary (user input, API responses, SSE payloads)
    - Domain enums from core/ used for enum fields

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
