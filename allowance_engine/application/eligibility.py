"""
Eligibility evaluation - decides whether an allowance is due for an account right now.

Pure function, no I/O: the same (schedule, now, tz) always gives the same answer.

Rules (first failing rule wins):
  1. no schedule                         -> ConfigAbsent
  2. disabled or amount <= 0             -> Disabled
  3. weekday != today's weekday          -> NotScheduledToday
  4. watermark date == today             -> AlreadyProcessedToday
  5. < min_days_between whole days since -> TooSoonSinceLastDisbursement
"""
from datetime import datetime, timedelta, tzinfo

from allowance_engine.domain.allowance import (
    AllowanceSchedule,
    Eligibility,
    SkipReason,
    as_aware,
    canonical_weekday,
)

DEFAULT_MIN_DAYS_BETWEEN = 7


def evaluate_eligibility(
    schedule: AllowanceSchedule | None,
    now: datetime,
    tz: tzinfo,
    min_days_between: int = DEFAULT_MIN_DAYS_BETWEEN,
) -> Eligibility:
    """
    Evaluate one account's schedule against "now" in the reference timezone.

    The weekday match and the minimum-interval floor gate independently: after
    a schedule edit the floor can suppress a payment the weekday rule allows.
    """
    if schedule is None:
        return Eligibility.skip(SkipReason.CONFIG_ABSENT)

    if not schedule.enabled or schedule.amount <= 0:
        return Eligibility.skip(SkipReason.DISABLED)

    local_now = as_aware(now).astimezone(tz)
    today = local_now.date()

    # Exact match, no normalization ("monday" never matches)
    if schedule.scheduled_weekday != canonical_weekday(today):
        return Eligibility.skip(SkipReason.NOT_SCHEDULED_TODAY)

    if schedule.watermark is not None:
        watermark = as_aware(schedule.watermark)

        if watermark.astimezone(tz).date() == today:
            return Eligibility.skip(SkipReason.ALREADY_PROCESSED_TODAY)

        days_since = (local_now - watermark) // timedelta(days=1)
        if days_since < min_days_between:
            return Eligibility.skip(SkipReason.TOO_SOON)

    return Eligibility.ok()
