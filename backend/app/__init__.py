"""Assistant Agent Application Package — streaming tool-calling chat backend.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
