"""
Weekly allowance batch - one full pass over every dependent account.

Used by both the daily scheduler job and the manual HTTP trigger.

For each account (independently):
  - read the schedule and evaluate eligibility
  - if eligible, run the disbursement transaction
  - classify as processed / skipped / errored

A failure in one account is logged and counted, never propagated. Only a
failure to enumerate guardians/accounts (AllowanceEnumerationError) aborts the run.
"""
import logging
import time
from collections import Counter
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from allowance_engine.application.disbursement import (
    DisbursementOutcome,
    DisbursementStatus,
    DisbursementTransaction,
)
from allowance_engine.application.eligibility import evaluate_eligibility
from allowance_engine.config import Settings, get_settings
from allowance_engine.domain.allowance import SkipReason, as_aware, canonical_weekday, utc_now
from allowance_engine.infrastructure.allowances.repository import (
    AccountRef,
    AllowanceRepository,
    iter_account_refs,
)

logger = logging.getLogger(__name__)

# Skips worth seeing in the regular log; the rest are routine
_NOTABLE_SKIPS = (SkipReason.ALREADY_PROCESSED_TODAY, SkipReason.TOO_SOON)


@dataclass(frozen=True)
class BatchSummary:
    processed: int
    skipped: int
    errored: int
    day: str
    skip_reasons: Dict[str, int] = field(default_factory=dict)
    timed_out: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "errored": self.errored,
            "day": self.day,
            "skip_reasons": dict(self.skip_reasons),
            "timed_out": self.timed_out,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class AllowanceBatchCoordinator:
    """
    Runs one allowance batch over all guardians and their accounts.

    Accounts are processed sequentially (ALLOWANCE_MAX_WORKERS=1) or in a
    bounded thread pool; every worker opens its own Session from the factory.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        transaction: DisbursementTransaction | None = None,
    ):
        settings = settings or get_settings()
        self.session_factory = session_factory
        self.clock = clock or utc_now
        self.tz = settings.get_timezone()
        self.min_days_between = settings.ALLOWANCE_MIN_DAYS_BETWEEN
        self.max_workers = max(1, settings.ALLOWANCE_MAX_WORKERS)
        self.page_size = settings.ALLOWANCE_PAGE_SIZE
        self.deadline_seconds = settings.ALLOWANCE_RUN_DEADLINE_SECONDS
        self.transaction = transaction or DisbursementTransaction(
            session_factory,
            tz=self.tz,
            max_attempts=settings.ALLOWANCE_MAX_TX_ATTEMPTS,
            min_days_between=settings.ALLOWANCE_MIN_DAYS_BETWEEN,
            clock=self.clock,
        )

    def run(self, now: datetime | None = None) -> BatchSummary:
        """
        Process every account once.

        Raises:
            AllowanceEnumerationError: guardians/accounts could not be listed
        """
        started_at = as_aware(now or self.clock())
        day = canonical_weekday(started_at.astimezone(self.tz).date())
        # finished_at and the deadline are measured from the run start, not the clock
        started_mono = time.monotonic()
        deadline = started_mono + self.deadline_seconds if self.deadline_seconds else None

        logger.info("Processing weekly allowances for %s", day)

        counts: Counter = Counter()
        reasons: Counter = Counter()

        def record(outcome: DisbursementOutcome) -> None:
            counts[outcome.status] += 1
            if outcome.reason is not None:
                reasons[outcome.reason.value] += 1

        accounts = iter_account_refs(self.session_factory, page_size=self.page_size)

        if self.max_workers == 1:
            timed_out = False
            for ref in accounts:
                if _expired(deadline):
                    timed_out = True
                    break
                record(self._process_account(ref, started_at))
        else:
            timed_out = self._run_parallel(accounts, started_at, deadline, record)

        if timed_out:
            logger.warning("Allowance run deadline reached; remaining accounts left for the next run")

        summary = BatchSummary(
            processed=counts[DisbursementStatus.PROCESSED],
            skipped=counts[DisbursementStatus.SKIPPED],
            errored=counts[DisbursementStatus.ERRORED],
            day=day,
            skip_reasons=dict(reasons),
            timed_out=timed_out,
            started_at=started_at,
            finished_at=started_at + timedelta(seconds=time.monotonic() - started_mono),
        )
        logger.info(
            "Weekly allowance processing complete. Processed: %d, Skipped: %d, Errors: %d",
            summary.processed, summary.skipped, summary.errored,
        )
        return summary

    def _run_parallel(self, accounts, now: datetime, deadline: float | None, record) -> bool:
        # Keep a bounded window of in-flight accounts instead of submitting the whole fan-out
        window = self.max_workers * 2
        timed_out = False

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="allowance") as pool:
            in_flight = set()
            for ref in accounts:
                if _expired(deadline):
                    timed_out = True
                    break
                if len(in_flight) >= window:
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        record(future.result())
                in_flight.add(pool.submit(self._process_account, ref, now))

            for future in wait(in_flight).done:
                record(future.result())

        return timed_out

    def _process_account(self, ref: AccountRef, now: datetime) -> DisbursementOutcome:
        """Never raises: every per-account failure becomes an errored outcome."""
        try:
            with self.session_factory() as db:
                schedule = AllowanceRepository(db).get_schedule(ref.account_id)

            eligibility = evaluate_eligibility(schedule, now, self.tz, self.min_days_between)
            if eligibility.eligible:
                outcome = self.transaction.apply(ref.account_id, now=now)
            else:
                outcome = DisbursementOutcome(
                    account_id=ref.account_id,
                    status=DisbursementStatus.SKIPPED,
                    reason=eligibility.reason,
                )
        except Exception as exc:
            logger.exception("Error processing allowance for account %d", ref.account_id)
            return DisbursementOutcome(
                account_id=ref.account_id,
                status=DisbursementStatus.ERRORED,
                error=exc,
            )

        if outcome.status == DisbursementStatus.ERRORED:
            logger.error("Error processing allowance for account %d: %s", ref.account_id, outcome.error)
        elif outcome.reason in _NOTABLE_SKIPS:
            logger.info("Allowance skipped for account %d: %s", ref.account_id, outcome.reason.value)
        return outcome


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline
