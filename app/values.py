"""Small value objects shared by the availability and ledger services."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time

from .errors import InvalidAmount, InvalidDuration, InvalidPayload

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    """Minutes since midnight for a time of day."""
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} is not a time of day")
    return time(minutes // 60, minutes % 60)


def parse_time(raw: object) -> time:
    """Parse ``HH:MM`` (seconds are accepted and ignored)."""
    if isinstance(raw, time):
        return raw
    try:
        parsed = time.fromisoformat(str(raw))
    except (TypeError, ValueError):
        raise InvalidPayload(f"'{raw}' is not a valid HH:MM time") from None
    return parsed.replace(second=0, microsecond=0)


def parse_date(raw: object, field: str = "date") -> date:
    if isinstance(raw, date):
        return raw
    try:
        return datetime.fromisoformat(str(raw)).date()
    except (TypeError, ValueError):
        raise InvalidPayload(f"{field} must be in YYYY-MM-DD format") from None


def parse_amount_cents(raw: object) -> int:
    """Validate an amount expressed in integer cents."""
    if isinstance(raw, bool):
        raise InvalidAmount()
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        raw = int(raw)
    if not isinstance(raw, int) or raw <= 0:
        raise InvalidAmount()
    return raw


def parse_duration(raw: object) -> int:
    if isinstance(raw, bool):
        raise InvalidDuration()
    try:
        minutes = int(raw)
    except (TypeError, ValueError):
        raise InvalidDuration() from None
    if minutes <= 0:
        raise InvalidDuration()
    return minutes


def cents_to_units(cents: int) -> float:
    return cents / 100.0


WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_weekday(raw: object) -> int:
    """ISO weekday (1=Monday) from a number or an English day name."""
    if isinstance(raw, bool):
        raise InvalidPayload(f"'{raw}' is not a weekday")
    if isinstance(raw, str) and not raw.strip().isdigit():
        name = raw.strip().lower()
        for number, day_name in enumerate(WEEKDAY_NAMES, start=1):
            if name in (day_name, day_name[:3]):
                return number
        raise InvalidPayload(f"'{raw}' is not a weekday")
    try:
        number = int(raw)
    except (TypeError, ValueError):
        raise InvalidPayload(f"'{raw}' is not a weekday") from None
    if not 1 <= number <= 7:
        raise InvalidPayload(f"'{raw}' is not a weekday")
    return number


@dataclass(frozen=True)
class Interval:
    """Half open ``[start, end)`` span in minutes since midnight.

    ``end`` may run past midnight for a booking that ends after the shop
    closes; it is never wrapped.
    """

    start: int
    end: int

    @classmethod
    def from_start(cls, start: int, duration_minutes: int) -> "Interval":
        return cls(start, start + duration_minutes)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end


@dataclass(frozen=True)
class HourWindow:
    """Hours during which a service can be booked, ``[start, end)``."""

    start: time
    end: time

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return to_minutes(self.end)

    @property
    def is_empty(self) -> bool:
        return self.end_minute <= self.start_minute

    @classmethod
    def from_mapping(cls, raw: dict | None) -> "HourWindow | None":
        """Build a window from the ``{"start": "08:00", "end": "18:00"}`` shape
        services store, or return ``None`` when hours are not configured."""
        if not raw or not raw.get("start") or not raw.get("end"):
            return None
        return cls(parse_time(raw["start"]), parse_time(raw["end"]))

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}
