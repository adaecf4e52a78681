"""Services Layer — stream accumulation, retries, tool dispatch, and the agent loop.

Invariants:
    - Services receive their client and dispatcher by injection, never from settings
    - Tool dispatch uses an explicit registry (no auto-discovery)
"""
