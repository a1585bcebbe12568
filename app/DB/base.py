"""ORM nexus."""

from __future__ import annotations

import logging

from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base mold."""
    pass


def list_models():
    """List model names."""
    return [m.class_.__name__ for m in Base.registry.mappers]


__all__ = ["Base", "list_models"]
