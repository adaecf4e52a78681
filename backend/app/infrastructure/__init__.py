"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure depends on core/ only for error types
    - All external calls wrapped with timeout and error mapping

Design Decisions:
    - Resilient wrappers over raw clients: retry policy lives next to the SDK
"""
