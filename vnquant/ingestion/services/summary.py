from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging

MAX_REPORTED_FAILURES = 10


class RunStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one retry unit: a chunk or a single instrument."""
    identifier: str
    succeeded: bool
    attempts: int = 1
    rows: int = 0
    error: BaseException | None = None

    def describe(self) -> str:
        if self.succeeded:
            return f"{self.identifier} - ok"
        return f"{self.identifier} - {self.error}"


@dataclass
class RunSummary:
    """Aggregate of outcomes; counters and an append-only list, so order does not matter."""
    total: int
    outcomes: list[FetchOutcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def record(self, outcome: FetchOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    @property
    def rows(self) -> int:
        return sum(outcome.rows for outcome in self.outcomes)

    @property
    def failures(self) -> list[FetchOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return self.succeeded / self.total

    @property
    def status(self) -> RunStatus:
        if self.failed:
            return RunStatus.COMPLETED_WITH_FAILURES
        return RunStatus.COMPLETED

    def failure_lines(self, limit: int = MAX_REPORTED_FAILURES) -> list[str]:
        failures = self.failures
        lines = [failure.describe() for failure in failures[:limit]]
        if len(failures) > limit:
            lines.append(f"... and {len(failures) - limit} more")
        return lines

    def log_failures(self, logger: logging.Logger) -> None:
        if not self.failed:
            return
        logger.warning("Failed %d units:", self.failed)
        for line in self.failure_lines():
            logger.warning("  %s", line)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "rows": self.rows,
            "success_rate": round(self.success_rate, 4),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "failures": self.failure_lines(),
        }
