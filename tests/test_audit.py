"""Tests for the engine audit trail."""

from __future__ import annotations

from datetime import datetime, timezone

from flashlev.audit import AuditEvent, AuditLogger


class TestAuditEvent:
    """Tests for AuditEvent serialization."""

    def test_to_dict_uses_iso_timestamp(self) -> None:
        event = AuditEvent(
            event_type="stage",
            message="Operation op-1 entered stage 'invested'",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            context={"operation_id": "op-1", "liquidity": 500_000},
        )

        data = event.to_dict()

        assert data["timestamp"] == "2024-01-01T00:00:00+00:00"
        assert data["context"]["liquidity"] == 500_000

    def test_from_dict_accepts_zulu_suffix(self) -> None:
        event = AuditEvent.from_dict(
            {"event_type": "error", "message": "boom", "timestamp": "2024-01-01T12:00:00Z", "severity": "error"}
        )
        assert event.timestamp == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


class TestAuditLogger:
    """Tests for AuditLogger helpers and filters."""

    def test_preflight_severity(self) -> None:
        audit = AuditLogger()
        audit.log_preflight("0xasset", 700, False, "Requested amount 700 exceeds limit 670")
        audit.log_preflight("0xasset", 500, True, "ok")

        assert [e.severity for e in audit.events] == ["warning", "info"]
        assert "FAIL" in audit.events[0].message

    def test_filter_by_operation(self) -> None:
        audit = AuditLogger()
        audit.log_started("op-1", "0xasset", 100)
        audit.log_stage("op-1", "authorized")
        audit.log_started("op-2", "0xasset", 200)

        assert len(audit.get_events(operation_id="op-1")) == 2
        assert len(audit.get_events(event_type="operation_started")) == 2
        assert len(audit.get_events(severity="debug")) == 1

    def test_aborted_event_context(self) -> None:
        audit = AuditLogger()
        audit.log_aborted("op-1", "invested", "borrowing_failed", "insufficient collateral", context={"extra": 1})

        event = audit.events[0]
        assert event.event_type == "operation_aborted"
        assert event.severity == "error"
        assert event.context == {
            "operation_id": "op-1",
            "stage": "invested",
            "code": "borrowing_failed",
            "reason": "insufficient collateral",
            "extra": 1,
        }

    def test_compensation_lists_steps(self) -> None:
        audit = AuditLogger()
        audit.log_compensation("op-1", ["remove 10 liquidity", "reset asset allowance to router to 0"])

        assert audit.events[0].context["steps"] == ["remove 10 liquidity", "reset asset allowance to router to 0"]
        assert "2 step(s)" in audit.events[0].message

    def test_clear_and_export(self) -> None:
        audit = AuditLogger()
        audit.log_error("boom")

        exported = audit.to_json_list()
        audit.clear()

        assert exported[0]["event_type"] == "error"
        assert audit.events == []
