"""Persistence of operation outcomes (SQLAlchemy)."""

from .operations import OperationStore, StorageConfig

__all__ = ["OperationStore", "StorageConfig"]
