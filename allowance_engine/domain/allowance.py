"""
Weekly allowance domain types

Pure values, no I/O. Weekday names are the seven canonical English names used
by the guardian app ("Sunday" .. "Saturday"); matching is exact.
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

# date.weekday(): Monday=0 .. Sunday=6
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
CANONICAL_WEEKDAYS = frozenset(WEEKDAY_NAMES)


def canonical_weekday(d: date) -> str:
    """Canonical weekday name for a calendar date."""
    return WEEKDAY_NAMES[d.weekday()]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(dt: datetime) -> datetime:
    """Naive timestamps (SQLite) are stored as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class SkipReason(str, Enum):
    """Why an account is not disbursed in this run (expected, not an error)."""

    CONFIG_ABSENT = "ConfigAbsent"
    DISABLED = "Disabled"
    NOT_SCHEDULED_TODAY = "NotScheduledToday"
    ALREADY_PROCESSED_TODAY = "AlreadyProcessedToday"
    TOO_SOON = "TooSoonSinceLastDisbursement"


@dataclass(frozen=True)
class AllowanceSchedule:
    """
    Validated allowance schedule of one dependent account

    watermark is timezone-aware (or None if the account was never paid).
    """
    account_id: int
    scheduled_weekday: str
    amount: Decimal
    enabled: bool
    watermark: datetime | None = None


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: SkipReason | None = None

    @classmethod
    def ok(cls) -> "Eligibility":
        return cls(eligible=True)

    @classmethod
    def skip(cls, reason: SkipReason) -> "Eligibility":
        return cls(eligible=False, reason=reason)
