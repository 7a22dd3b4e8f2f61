from __future__ import annotations

from vnquant.ingestion.services.summary import FetchOutcome, RunStatus, RunSummary


def test_success_rate_and_status() -> None:
    summary = RunSummary(total=4)
    summary.record(FetchOutcome("A:X", True, rows=3))
    summary.record(FetchOutcome("B:X", True, rows=2))
    summary.record(FetchOutcome("C:X", True))
    summary.record(FetchOutcome("D:X", False, error=RuntimeError("boom")))

    assert summary.succeeded == 3
    assert summary.failed == 1
    assert summary.rows == 5
    assert summary.success_rate == 0.75
    assert summary.status is RunStatus.COMPLETED_WITH_FAILURES


def test_empty_summary_is_completed() -> None:
    summary = RunSummary(total=0)

    assert summary.success_rate == 1.0
    assert summary.status is RunStatus.COMPLETED
    assert summary.failure_lines() == []


def test_failure_lines_cap_at_ten_with_remainder() -> None:
    summary = RunSummary(total=13)
    for index in range(13):
        summary.record(FetchOutcome(f"S{index}:X", False, error=RuntimeError("down")))

    lines = summary.failure_lines()

    assert len(lines) == 11
    assert lines[0] == "S0:X - down"
    assert lines[-1] == "... and 3 more"


def test_to_dict_is_json_safe() -> None:
    summary = RunSummary(total=1, elapsed_seconds=1.23456)
    summary.record(FetchOutcome("chunk 1/1", True, attempts=2, rows=10))

    assert summary.to_dict() == {
        "status": "completed",
        "total": 1,
        "succeeded": 1,
        "failed": 0,
        "rows": 10,
        "success_rate": 1.0,
        "elapsed_seconds": 1.235,
        "failures": [],
    }
