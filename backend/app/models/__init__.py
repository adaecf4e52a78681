"""ORM Models — SQLAlchemy declarative models for chat persistence.

Invariants:
    - All models inherit from Base (db/base.py)
    - ChatSession is the aggregate root; messages scoped by session_id

Design Decisions:
    - One file per entity
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from app.models.chat_session import ChatSession  # noqa: F401
from app.models.chat_message import ChatMessage  # noqa: F401
