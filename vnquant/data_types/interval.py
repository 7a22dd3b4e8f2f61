from enum import StrEnum


class Interval(StrEnum):
    MINUTE_1 = "1m"
    MINUTE_5 = "5m"
    MINUTE_15 = "15m"
    MINUTE_30 = "30m"
    HOUR_1 = "1h"
    HOUR_2 = "2h"
    HOUR_4 = "4h"
    DAY_1 = "1d"
    WEEK_1 = "1w"
    MONTH_1 = "1M"

    @classmethod
    def parse(cls, value: "str | Interval") -> "Interval":
        """
        Accept either the stored short code ("1d") or the kebab-case name ("one-day").
        """
        if isinstance(value, Interval):
            return value
        text = str(value).strip()
        if text in _NAMES:
            return _NAMES[text]
        try:
            return cls(text)
        except ValueError:
            raise ValueError(
                f"Unknown interval {value!r}; expected one of "
                f"{', '.join(sorted(_NAMES))} or {', '.join(i.value for i in cls)}"
            ) from None


_NAMES = {
    "one-minute": Interval.MINUTE_1,
    "five-minutes": Interval.MINUTE_5,
    "fifteen-minutes": Interval.MINUTE_15,
    "thirty-minutes": Interval.MINUTE_30,
    "one-hour": Interval.HOUR_1,
    "two-hours": Interval.HOUR_2,
    "four-hours": Interval.HOUR_4,
    "one-day": Interval.DAY_1,
    "one-week": Interval.WEEK_1,
    "one-month": Interval.MONTH_1,
}
