"""Core Layer — pure agent-loop building blocks, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Stream reduction, budgets, messages and events are plain data + pure functions

Design Decisions:
    - Functional core separated from imperative shell: the async read loop and
      the agent loop live in services/
"""
