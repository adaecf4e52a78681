"""Declarative base shared by ORM models and alembic metadata."""
