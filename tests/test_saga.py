"""Tests for the compensation log."""

from __future__ import annotations

import pytest

from flashlev.errors import BorrowingFailed, CompensationFailed
from flashlev.execution.saga import CompensationLog


class TestCompensationLog:
    """Tests for recording and unwinding undo steps."""

    def test_unwind_runs_newest_first(self) -> None:
        calls: list[str] = []
        log = CompensationLog()
        log.record("approve", lambda: calls.append("approve"))
        log.record("mint", lambda: calls.append("mint"))
        log.record("borrow", lambda: calls.append("borrow"))

        log.unwind()

        assert calls == ["borrow", "mint", "approve"]
        assert log.unwound == ["borrow", "mint", "approve"]
        assert len(log) == 0

    def test_failed_step_does_not_stop_unwinding(self) -> None:
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("router paused")

        log = CompensationLog()
        log.record("approve", lambda: calls.append("approve"))
        log.record("mint", broken)
        log.record("borrow", lambda: calls.append("borrow"))

        cause = BorrowingFailed("insufficient collateral")
        with pytest.raises(CompensationFailed) as exc_info:
            log.unwind(cause=cause)

        assert calls == ["borrow", "approve"]
        assert exc_info.value.failures == ["mint: router paused"]
        assert exc_info.value.original is cause
        assert "insufficient collateral" in exc_info.value.reason
        assert "unwind incomplete" in exc_info.value.reason

    def test_unwind_empty_log(self) -> None:
        log = CompensationLog()
        log.unwind()
        assert log.unwound == []

    def test_discard_forgets_steps(self) -> None:
        calls: list[str] = []
        log = CompensationLog()
        log.record("approve", lambda: calls.append("approve"))

        log.discard()
        log.unwind()

        assert calls == []

    def test_descriptions_in_recording_order(self) -> None:
        log = CompensationLog()
        log.record("a", lambda: None)
        log.record("b", lambda: None)
        assert log.descriptions() == ["a", "b"]
