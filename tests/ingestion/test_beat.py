from __future__ import annotations

from vnquant.celery_app import app
from vnquant.ingestion.schedules.beat import beat_schedule


def test_beat_schedule_targets_registered_task_names() -> None:
    tasks = {entry["task"] for entry in beat_schedule.values()}

    assert tasks == {
        "ingestion.fetch_tickers",
        "ingestion.fetch_prices_all",
        "ingestion.fetch_intraday_prices_all",
    }
    assert app.conf.beat_schedule == beat_schedule
