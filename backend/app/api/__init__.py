"""API Layer — FastAPI routes and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - REST endpoints return structured JSON; the chat endpoint streams SSE
"""
