"""SQLAlchemy models for operation outcomes.

Table: flash_operations
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class OperationRecord(Base):
    """One initiation attempt and how it ended.

    Amounts are stored as decimal strings: base-unit integers overflow BIGINT.
    """

    __tablename__ = "flash_operations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    operation_id = Column(Text, nullable=True)  # None when rejected before a loan was requested
    asset = Column(Text, nullable=False)
    amount = Column(Text, nullable=False)
    accepted = Column(Boolean, nullable=False)
    code = Column(Text, nullable=True)
    reason = Column(Text, nullable=False, default="")
    stage = Column(Text, nullable=True)
    protocol_fee = Column(Text, nullable=True)
    execution_cost = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_flash_operations_asset_created", "asset", "created_at"),)

    def __repr__(self) -> str:
        return f"<OperationRecord(id={self.id}, asset={self.asset}, amount={self.amount}, accepted={self.accepted})>"
