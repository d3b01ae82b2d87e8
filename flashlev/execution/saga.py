"""Compensation log for the callback stages.

Each applied effect records its inverse. Unwinding runs the inverses newest
first and keeps going past individual failures, so one broken undo step does
not leave later effects in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from flashlev.errors import CompensationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompensationStep:
    description: str
    undo: Callable[[], object]


@dataclass
class CompensationLog:
    steps: list[CompensationStep] = field(default_factory=list)
    unwound: list[str] = field(default_factory=list)

    def record(self, description: str, undo: Callable[[], object]) -> None:
        self.steps.append(CompensationStep(description=description, undo=undo))

    def __len__(self) -> int:
        return len(self.steps)

    def descriptions(self) -> list[str]:
        return [step.description for step in self.steps]

    def unwind(self, *, cause: Optional[BaseException] = None) -> None:
        """Undo every recorded effect in reverse order.

        Raises:
            CompensationFailed: If any undo step raised. All remaining steps
                are still attempted first.
        """
        failures: list[str] = []
        while self.steps:
            step = self.steps.pop()
            try:
                step.undo()
            except Exception as exc:
                logger.exception("Compensation step failed: %s", step.description)
                failures.append(f"{step.description}: {exc}")
            else:
                logger.info("Compensated: %s", step.description)
                self.unwound.append(step.description)

        if failures:
            original = getattr(cause, "reason", None) or (str(cause) if cause else "abort")
            raise CompensationFailed(
                f"{original} (unwind incomplete: {'; '.join(failures)})",
                failures=failures,
                original=cause,
            )

    def discard(self) -> None:
        """Forget recorded steps once the operation has committed."""
        self.steps.clear()
