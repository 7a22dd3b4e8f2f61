from celery.schedules import crontab

beat_schedule = {
    # Refresh the instrument universe before the daily price pull, Mon-Fri
    "fetch_tickers_daily": {
        "task": "ingestion.fetch_tickers",
        "schedule": crontab(minute=0, hour=21, day_of_week="mon-fri"),
        "args": (),
    },
    # Daily bars for the whole universe, chunked with retries.
    "fetch_prices_all_daily": {
        "task": "ingestion.fetch_prices_all",
        "schedule": crontab(minute=30, hour=21, day_of_week="mon-fri"),
        "args": (),
    },
    # Intraday replay of one-minute bars after the close.
    "fetch_intraday_prices_all_daily": {
        "task": "ingestion.fetch_intraday_prices_all",
        "schedule": crontab(minute=0, hour=23, day_of_week="mon-fri"),
        "args": ("1m",),
    },
}
