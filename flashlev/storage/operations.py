from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from db.models.operations import Base, OperationRecord
from flashlev.types import OperationResult


@dataclass(frozen=True)
class StorageConfig:
    """Connection configuration.

    `database_url` should come from environment (e.g. DATABASE_URL).
    Do not log it.
    """

    database_url: str

    @classmethod
    def from_env(cls) -> Optional[StorageConfig]:
        url = os.environ.get("DATABASE_URL", "").strip()
        return cls(database_url=url) if url else None


class OperationStore:
    """Records the outcome of every initiation attempt."""

    def __init__(self, *, config: StorageConfig) -> None:
        self._config = config
        self._engine: Any | None = None

    def _get_engine(self) -> Any:
        if self._engine is None:
            self._engine = create_engine(self._config.database_url, echo=False, pool_pre_ping=True)
        return self._engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self._get_engine())

    def record(self, result: OperationResult, *, asset: str) -> None:
        fees = result.fee_estimate
        row = OperationRecord(
            operation_id=result.operation_id,
            asset=asset,
            amount=str(result.amount),
            accepted=result.accepted,
            code=result.code,
            reason=result.reason,
            stage=result.stage,
            protocol_fee=str(fees.protocol_fee) if fees else None,
            execution_cost=str(fees.execution_cost) if fees else None,
        )
        with Session(self._get_engine()) as session, session.begin():
            session.add(row)

    def list_recent(self, *, limit: int = 50, asset: Optional[str] = None) -> list[dict[str, Any]]:
        """Return the newest records first as plain dictionaries."""
        stmt = select(OperationRecord).order_by(OperationRecord.id.desc()).limit(limit)
        if asset is not None:
            stmt = stmt.where(OperationRecord.asset == asset)

        with Session(self._get_engine()) as session:
            rows = session.execute(stmt).scalars().all()
            return [
                {
                    "id": row.id,
                    "operation_id": row.operation_id,
                    "asset": row.asset,
                    "amount": int(row.amount),
                    "accepted": row.accepted,
                    "code": row.code,
                    "reason": row.reason,
                    "stage": row.stage,
                    "protocol_fee": int(row.protocol_fee) if row.protocol_fee is not None else None,
                    "execution_cost": int(row.execution_cost) if row.execution_cost is not None else None,
                    "created_at": row.created_at.isoformat() if row.created_at else None,
                }
                for row in rows
            ]
