"""
Disbursement transaction - applies one weekly allowance atomically.

In a single database transaction:
  1. re-read allowance settings and re-check eligibility (fresh watermark)
  2. read the wallet (missing -> AccountStateError, nothing written)
  3. total_balance += amount, spending_balance += amount
  4. append a ledger entry
  5. last_processed = commit time

Either all writes commit or none do. Concurrent runs for the same account are
serialized by version_id / the unique idempotency key; the loser re-reads,
sees today's watermark and ends up skipped.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Callable

from sqlalchemy.orm import Session

from allowance_engine.application.eligibility import DEFAULT_MIN_DAYS_BETWEEN, evaluate_eligibility
from allowance_engine.domain.allowance import SkipReason, as_aware, utc_now
from allowance_engine.domain.ledger import allowance_entry
from allowance_engine.infrastructure.allowances.repository import (
    AccountStateError,
    AllowanceRepository,
    schedule_from_row,
)
from allowance_engine.infrastructure.db.models import LedgerEntry
from allowance_engine.infrastructure.db.transaction import (
    TransactionConflictError,
    TxResult,
    run_in_transaction,
)
from allowance_engine.utils.money import format_money2

logger = logging.getLogger(__name__)


class DisbursementStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class DisbursementOutcome:
    account_id: int
    status: DisbursementStatus
    reason: SkipReason | None = None
    error: Exception | None = None
    ledger_entry_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    committed_at: datetime | None = None
    attempts: int = 0


class DisbursementTransaction:
    """
    Use case: начислить еженедельное пособие одному account'у

    The session factory is injected; each attempt opens its own Session.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        tz: tzinfo,
        max_attempts: int = 5,
        min_days_between: int = DEFAULT_MIN_DAYS_BETWEEN,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_factory = session_factory
        self.tz = tz
        self.max_attempts = max_attempts
        self.min_days_between = min_days_between
        self.clock = clock or utc_now

    def apply(self, account_id: int, now: datetime | None = None) -> DisbursementOutcome:
        """
        Apply the allowance for `account_id` if it is still eligible.

        `now` is the batch run time: eligibility is re-checked against it and it
        becomes the commit time (watermark, ledger timestamp). Defaults to the clock.

        Never raises for expected per-account conditions: skips, a missing
        wallet and an exhausted retry budget all come back as an outcome.
        """
        try:
            outcome, attempts = run_in_transaction(
                self.session_factory,
                lambda db: self._apply_once(db, account_id, now),
                max_attempts=self.max_attempts,
            )
        except TransactionConflictError as exc:
            return DisbursementOutcome(
                account_id=account_id,
                status=DisbursementStatus.ERRORED,
                error=exc,
                attempts=exc.attempts,
            )

        outcome = replace(outcome, attempts=attempts)
        if outcome.status == DisbursementStatus.PROCESSED:
            logger.info(
                "Processed allowance for account %d: %s (ledger entry %s)",
                account_id, format_money2(outcome.amount, outcome.currency), outcome.ledger_entry_id,
            )
        return outcome

    def _apply_once(self, db: Session, account_id: int, now: datetime | None) -> TxResult:
        repo = AllowanceRepository(db)
        # Stored as UTC (SQLite keeps no offset)
        now = as_aware(now or self.clock()).astimezone(timezone.utc)

        row = repo.get_settings_row(account_id)
        try:
            schedule = schedule_from_row(row) if row is not None else None
        except AccountStateError as exc:
            return TxResult.abort(self._errored(account_id, exc))

        eligibility = evaluate_eligibility(schedule, now, self.tz, self.min_days_between)
        if not eligibility.eligible:
            return TxResult.abort(DisbursementOutcome(
                account_id=account_id,
                status=DisbursementStatus.SKIPPED,
                reason=eligibility.reason,
            ))

        wallet = repo.get_wallet(account_id)
        if wallet is None:
            return TxResult.abort(self._errored(
                account_id, AccountStateError(f"Wallet not found for account {account_id}")
            ))

        amount = schedule.amount
        wallet.total_balance = wallet.total_balance + amount
        wallet.spending_balance = wallet.spending_balance + amount
        wallet.updated_at = now

        entry = LedgerEntry(**allowance_entry(
            account_id=account_id,
            wallet_id=wallet.id,
            amount=amount,
            weekday=schedule.scheduled_weekday,
            timestamp=now,
            local_day=now.astimezone(self.tz).date(),
        ))
        db.add(entry)

        row.last_processed = now
        return TxResult.commit(DisbursementOutcome(
            account_id=account_id,
            status=DisbursementStatus.PROCESSED,
            ledger_entry_id=entry.id,
            amount=amount,
            currency=wallet.currency,
            committed_at=now,
        ))

    @staticmethod
    def _errored(account_id: int, error: Exception) -> DisbursementOutcome:
        return DisbursementOutcome(
            account_id=account_id,
            status=DisbursementStatus.ERRORED,
            error=error,
        )
