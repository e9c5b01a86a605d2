"""
Tests for the allowance batch coordinator
"""
import logging
from datetime import timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from allowance_engine.application import allowance_batch
from allowance_engine.application.allowance_batch import AllowanceBatchCoordinator, BatchSummary
from allowance_engine.application.disbursement import DisbursementOutcome, DisbursementStatus
from allowance_engine.config import Settings
from allowance_engine.infrastructure.allowances.repository import (
    AllowanceEnumerationError,
    AllowanceRepository,
)
from allowance_engine.infrastructure.db.models import (
    AllowanceSettings,
    DependentAccount,
    Guardian,
    LedgerEntry,
    Wallet,
)
from allowance_engine.infrastructure.db.session import Base

from conftest import MONDAY


class RecordingTransaction:
    """Stub disbursement: records calls, optionally fails for chosen accounts"""

    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def apply(self, account_id, now=None):
        self.calls.append(account_id)
        if account_id in self.fail_for:
            raise RuntimeError(f"boom {account_id}")
        return DisbursementOutcome(account_id=account_id, status=DisbursementStatus.PROCESSED)


class FakeTime:
    """Replaces the `time` module inside allowance_batch"""

    def __init__(self, readings):
        self._readings = iter(readings)
        self._last = 0.0

    def monotonic(self):
        self._last = next(self._readings, self._last)
        return self._last


@pytest.fixture
def file_session_factory(tmp_path):
    """File-based SQLite: thread pool workers get real separate connections"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'allowance.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


def _seed_many(factory, count, with_wallet=False):
    with factory() as db:
        db.add(Guardian(id=1, email="parallel@example.com"))
        for _ in range(count):
            account = DependentAccount(guardian_id=1, display_name="Child")
            db.add(account)
            db.flush()
            db.add(AllowanceSettings(
                account_id=account.id,
                weekly_amount=Decimal("10"),
                day_of_week="Monday",
                is_enabled=True,
            ))
            if with_wallet:
                db.add(Wallet(
                    id=f"wallet-{account.id:03d}",
                    account_id=account.id,
                    total_balance=Decimal("0"),
                    spending_balance=Decimal("0"),
                ))
        db.commit()


# ============================================================================
# Classification
# ============================================================================


class TestClassification:
    def test_empty_store(self, session_factory, test_settings, fixed_clock):
        summary = AllowanceBatchCoordinator(session_factory, settings=test_settings, clock=fixed_clock).run()

        assert (summary.processed, summary.skipped, summary.errored) == (0, 0, 0)
        assert summary.day == "Monday"
        assert summary.timed_out is False

    def test_mixed_accounts_are_classified(
        self, session_factory, test_settings, fixed_clock, seed_account, read_wallet
    ):
        """Каждый account классифицируется ровно один раз"""
        paid = seed_account(amount="50")
        seed_account(enabled=False)
        seed_account(day="Tuesday")
        seed_account(last_processed=MONDAY - timedelta(seconds=4))
        seed_account(last_processed=MONDAY - timedelta(days=3))
        seed_account(with_settings=False)
        no_wallet = seed_account(with_wallet=False)

        summary = AllowanceBatchCoordinator(session_factory, settings=test_settings, clock=fixed_clock).run()

        assert summary.processed == 1
        assert summary.skipped == 5
        assert summary.errored == 1
        assert summary.processed + summary.skipped + summary.errored == 7
        assert summary.skip_reasons == {
            "Disabled": 1,
            "NotScheduledToday": 1,
            "AlreadyProcessedToday": 1,
            "TooSoonSinceLastDisbursement": 1,
            "ConfigAbsent": 1,
        }
        assert read_wallet(paid).total_balance == Decimal("50")
        assert read_wallet(no_wallet) is None

    def test_rerun_same_day_is_idempotent(self, session_factory, test_settings, fixed_clock, seed_account, read_wallet):
        ids = [seed_account(amount="15") for _ in range(3)]
        coordinator = AllowanceBatchCoordinator(session_factory, settings=test_settings, clock=fixed_clock)

        first = coordinator.run()
        second = coordinator.run(now=MONDAY + timedelta(hours=3))

        assert first.processed == 3
        assert second.processed == 0
        assert second.skipped == 3
        assert second.skip_reasons == {"AlreadyProcessedToday": 3}
        for account_id in ids:
            assert read_wallet(account_id).total_balance == Decimal("15")


# ============================================================================
# Run time
# ============================================================================


class TestRunTime:
    def test_explicit_now_drives_whole_run(
        self, session_factory, test_settings, fixed_clock, seed_account, read_ledger, read_settings
    ):
        """Clock says Monday, the run is for Tuesday: the account is judged and stamped as Tuesday"""
        tuesday = MONDAY + timedelta(days=1)
        account_id = seed_account(day="Tuesday", amount="30")

        summary = AllowanceBatchCoordinator(
            session_factory, settings=test_settings, clock=fixed_clock
        ).run(now=tuesday)

        assert summary.day == "Tuesday"
        assert summary.processed == 1
        assert summary.skipped == 0
        assert summary.started_at == tuesday
        assert summary.finished_at >= summary.started_at

        entry = read_ledger(account_id)[0]
        assert entry.timestamp.replace(tzinfo=timezone.utc) == tuesday
        assert entry.idempotency_key == f"allowance-{account_id}-2026-10-20"
        assert read_settings(account_id).last_processed.replace(tzinfo=timezone.utc) == tuesday

    def test_finished_at_not_before_started_at(self, session_factory, test_settings, seed_account):
        seed_account()
        ticks = iter([MONDAY, MONDAY - timedelta(hours=1)])

        summary = AllowanceBatchCoordinator(
            session_factory, settings=test_settings, clock=lambda: next(ticks, MONDAY)
        ).run()

        assert summary.finished_at >= summary.started_at


# ============================================================================
# Failure isolation
# ============================================================================


class TestFailureIsolation:
    def test_missing_wallets_are_isolated(
        self, session_factory, test_settings, fixed_clock, seed_account, read_wallet, read_ledger
    ):
        """K accounts without wallet -> K errors, the rest still paid"""
        healthy = [seed_account(amount="20") for _ in range(3)]
        broken = [seed_account(with_wallet=False) for _ in range(2)]

        summary = AllowanceBatchCoordinator(session_factory, settings=test_settings, clock=fixed_clock).run()

        assert summary.processed == 3
        assert summary.errored == 2
        for account_id in healthy:
            assert read_wallet(account_id).spending_balance == Decimal("20")
            assert len(read_ledger(account_id)) == 1
        for account_id in broken:
            assert read_ledger(account_id) == []

    def test_unexpected_error_in_one_account(self, session_factory, test_settings, fixed_clock, seed_account, caplog):
        ids = [seed_account() for _ in range(3)]
        transaction = RecordingTransaction(fail_for={ids[1]})

        with caplog.at_level(logging.ERROR):
            summary = AllowanceBatchCoordinator(
                session_factory, settings=test_settings, clock=fixed_clock, transaction=transaction
            ).run()

        assert summary.processed == 2
        assert summary.errored == 1
        assert transaction.calls == ids
        assert f"Error processing allowance for account {ids[1]}" in caplog.text

    def test_invalid_settings_row_is_errored(
        self, session_factory, test_settings, fixed_clock, seed_account, monkeypatch
    ):
        broken = seed_account()
        healthy = seed_account()
        original = AllowanceRepository.get_settings_row

        def malformed(self, account_id):
            if account_id == broken:
                return SimpleNamespace(
                    account_id=broken,
                    weekly_amount="not-a-number",
                    day_of_week="Monday",
                    is_enabled=True,
                    last_processed=None,
                )
            return original(self, account_id)

        monkeypatch.setattr(AllowanceRepository, "get_settings_row", malformed)
        transaction = RecordingTransaction()

        summary = AllowanceBatchCoordinator(
            session_factory, settings=test_settings, clock=fixed_clock, transaction=transaction
        ).run()

        assert summary.errored == 1
        assert summary.processed == 1
        assert transaction.calls == [healthy]

    def test_enumeration_failure_aborts_run(
        self, session_factory, test_settings, fixed_clock, seed_account, monkeypatch
    ):
        seed_account()

        def broken(self, after_id=0, limit=200):
            raise OperationalError("SELECT guardians", {}, Exception("connection lost"))

        monkeypatch.setattr(AllowanceRepository, "list_guardian_ids", broken)

        with pytest.raises(AllowanceEnumerationError):
            AllowanceBatchCoordinator(session_factory, settings=test_settings, clock=fixed_clock).run()


# ============================================================================
# Enumeration, deadline, parallelism
# ============================================================================


class TestExecution:
    def test_walks_every_page(self, session_factory, fixed_clock, seed_account):
        """Pagination across guardians and accounts visits each account once"""
        for guardian_id in (1, 2, 3):
            for _ in range(3):
                seed_account(guardian_id=guardian_id)
        settings = Settings(TIMEZONE="UTC", ALLOWANCE_MAX_WORKERS=1, ALLOWANCE_PAGE_SIZE=2)
        transaction = RecordingTransaction()

        summary = AllowanceBatchCoordinator(
            session_factory, settings=settings, clock=fixed_clock, transaction=transaction
        ).run()

        assert summary.processed == 9
        assert sorted(transaction.calls) == list(range(1, 10))

    def test_deadline_leaves_rest_for_next_run(self, session_factory, fixed_clock, seed_account, monkeypatch, caplog):
        ids = [seed_account() for _ in range(4)]
        settings = Settings(TIMEZONE="UTC", ALLOWANCE_MAX_WORKERS=1, ALLOWANCE_RUN_DEADLINE_SECONDS=10)
        transaction = RecordingTransaction()
        # start=0 -> deadline 10; two accounts fit, then the clock jumps past it
        monkeypatch.setattr(allowance_batch, "time", FakeTime([0.0, 1.0, 2.0, 50.0]))

        with caplog.at_level(logging.WARNING):
            summary = AllowanceBatchCoordinator(
                session_factory, settings=settings, clock=fixed_clock, transaction=transaction
            ).run()

        assert summary.timed_out is True
        assert summary.processed == 2
        assert transaction.calls == ids[:2]
        assert summary.finished_at == MONDAY + timedelta(seconds=50)
        assert "deadline reached" in caplog.text

    def test_parallel_workers_process_each_account_once(self, file_session_factory, fixed_clock):
        """Thread pool path with a stub: every account handed out exactly once"""
        _seed_many(file_session_factory, 25)
        settings = Settings(TIMEZONE="UTC", ALLOWANCE_MAX_WORKERS=4, ALLOWANCE_PAGE_SIZE=7)
        transaction = RecordingTransaction(fail_for={5})

        summary = AllowanceBatchCoordinator(
            file_session_factory, settings=settings, clock=fixed_clock, transaction=transaction
        ).run()

        assert summary.processed == 24
        assert summary.errored == 1
        assert sorted(transaction.calls) == list(range(1, 26))

    def test_parallel_real_disbursements(self, file_session_factory, fixed_clock):
        """4 workers, real transactions: each wallet credited once, one ledger entry per account"""
        _seed_many(file_session_factory, 20, with_wallet=True)
        settings = Settings(TIMEZONE="UTC", ALLOWANCE_MAX_WORKERS=4, ALLOWANCE_PAGE_SIZE=6)

        summary = AllowanceBatchCoordinator(file_session_factory, settings=settings, clock=fixed_clock).run()

        assert summary.processed == 20
        assert summary.errored == 0
        with file_session_factory() as db:
            wallets = list(db.execute(select(Wallet)).scalars())
            entries = list(db.execute(select(LedgerEntry)).scalars())
        assert len(wallets) == 20
        for wallet in wallets:
            assert wallet.total_balance == Decimal("10")
            assert wallet.spending_balance == Decimal("10")
        assert sorted(e.account_id for e in entries) == list(range(1, 21))


# ============================================================================
# Summary
# ============================================================================


class TestBatchSummary:
    def test_to_dict(self, session_factory, test_settings, fixed_clock, seed_account):
        seed_account()
        seed_account(enabled=False)

        payload = AllowanceBatchCoordinator(
            session_factory, settings=test_settings, clock=fixed_clock
        ).run().to_dict()

        assert payload["processed"] == 1
        assert payload["skipped"] == 1
        assert payload["errored"] == 0
        assert payload["day"] == "Monday"
        assert payload["skip_reasons"] == {"Disabled": 1}
        assert payload["timed_out"] is False
        assert payload["started_at"] == MONDAY.isoformat()

    def test_run_logs_weekday(self, session_factory, test_settings, fixed_clock, caplog):
        with caplog.at_level(logging.INFO):
            AllowanceBatchCoordinator(session_factory, settings=test_settings, clock=fixed_clock).run()

        assert "Processing weekly allowances for Monday" in caplog.text
        assert "Processed: 0, Skipped: 0, Errors: 0" in caplog.text

    def test_defaults(self):
        summary = BatchSummary(processed=0, skipped=0, errored=0, day="Friday")

        assert summary.skip_reasons == {}
        assert summary.to_dict()["started_at"] is None
