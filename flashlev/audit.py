"""Audit logging for the execution engine.

Provides a structured event format for every pre-flight decision, stage
transition, abort and compensation step, with enough context to replay what
happened to a given operation.

All timestamps use timezone-aware UTC datetimes for consistency.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Literal, Optional


EventType = Literal[
    "preflight",
    "operation_started",
    "stage",
    "operation_completed",
    "operation_rejected",
    "operation_aborted",
    "compensation",
    "error",
]

Severity = Literal["debug", "info", "warning", "error"]


@dataclass
class AuditEvent:
    """Structured audit event for engine decisions and actions."""

    event_type: EventType
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: Severity = "info"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEvent:
        """Create from dictionary."""
        data = dict(data)
        timestamp_value = data.get("timestamp")
        if isinstance(timestamp_value, str):
            ts = timestamp_value
            # Normalize trailing 'Z' (UTC)
            if ts.endswith("Z"):
                ts = ts[:-1] + "+00:00"
            try:
                data["timestamp"] = datetime.fromisoformat(ts)
            except ValueError:
                data.pop("timestamp", None)
        return cls(**data)


class AuditLogger:
    """Thread-safe in-memory audit logger."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []
        self._lock = Lock()

    def log(self, event: AuditEvent) -> None:
        with self._lock:
            self.events.append(event)

    def log_preflight(
        self,
        asset: str,
        amount: int,
        passed: bool,
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a risk gate result."""
        severity: Severity = "info" if passed else "warning"
        self.log(
            AuditEvent(
                event_type="preflight",
                message=f"Pre-flight for {amount} of {asset}: {'PASS' if passed else 'FAIL'} - {reason}",
                severity=severity,
                context={"asset": asset, "amount": amount, "passed": passed, "reason": reason, **(context or {})},
            )
        )

    def log_started(self, operation_id: str, asset: str, amount: int, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AuditEvent(
                event_type="operation_started",
                message=f"Operation {operation_id} started: flash loan of {amount} {asset}",
                context={"operation_id": operation_id, "asset": asset, "amount": amount, **(context or {})},
            )
        )

    def log_stage(self, operation_id: str, stage: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log a callback stage transition."""
        self.log(
            AuditEvent(
                event_type="stage",
                message=f"Operation {operation_id} entered stage '{stage}'",
                severity="debug",
                context={"operation_id": operation_id, "stage": stage, **(context or {})},
            )
        )

    def log_completed(
        self, operation_id: str, asset: str, amount: int, context: Optional[dict[str, Any]] = None
    ) -> None:
        self.log(
            AuditEvent(
                event_type="operation_completed",
                message=f"Operation {operation_id} completed: {amount} {asset} repaid",
                context={"operation_id": operation_id, "asset": asset, "amount": amount, **(context or {})},
            )
        )

    def log_rejected(
        self, asset: str, amount: int, code: str, reason: str, context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log an operation that never started."""
        self.log(
            AuditEvent(
                event_type="operation_rejected",
                message=f"Operation rejected for {amount} {asset}: {reason}",
                severity="warning",
                context={"asset": asset, "amount": amount, "code": code, "reason": reason, **(context or {})},
            )
        )

    def log_aborted(
        self,
        operation_id: str,
        stage: str,
        code: str,
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an operation aborted after it started."""
        self.log(
            AuditEvent(
                event_type="operation_aborted",
                message=f"Operation {operation_id} aborted at '{stage}': {reason}",
                severity="error",
                context={
                    "operation_id": operation_id,
                    "stage": stage,
                    "code": code,
                    "reason": reason,
                    **(context or {}),
                },
            )
        )

    def log_compensation(self, operation_id: str, steps: list[str], context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AuditEvent(
                event_type="compensation",
                message=f"Operation {operation_id} unwound {len(steps)} step(s)",
                severity="warning",
                context={"operation_id": operation_id, "steps": list(steps), **(context or {})},
            )
        )

    def log_error(self, error_message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AuditEvent(
                event_type="error",
                message=error_message,
                severity="error",
                context=context or {},
            )
        )

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        severity: Optional[Severity] = None,
        operation_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Get filtered audit events."""
        with self._lock:
            events = list(self.events)
        return [
            e
            for e in events
            if (event_type is None or e.event_type == event_type)
            and (severity is None or e.severity == severity)
            and (operation_id is None or e.context.get("operation_id") == operation_id)
        ]

    def clear(self) -> None:
        """Clear all events (for testing)."""
        with self._lock:
            self.events.clear()

    def to_json_list(self) -> list[dict[str, Any]]:
        """Export all events as JSON-serializable list."""
        with self._lock:
            return [event.to_dict() for event in self.events]
