"""Declarative base for the document store tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Registry for ``documents`` and ``document_keys``; see ``create_tables``."""
