"""SQLAlchemy models for the flashlev database."""

from db.models.operations import Base, OperationRecord

__all__ = ["Base", "OperationRecord"]
