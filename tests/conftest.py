"""
Pytest fixtures for testing
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from allowance_engine.config import Settings
from allowance_engine.infrastructure.db.session import Base
from allowance_engine.infrastructure.db.models import (
    AllowanceSettings,
    DependentAccount,
    Guardian,
    LedgerEntry,
    Wallet,
)

# 2026-10-19 is a Monday
MONDAY = datetime(2026, 10, 19, 0, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session of a test (StaticPool)"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    """Create database session for tests"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def test_settings():
    """Sequential runs, UTC reference timezone"""
    return Settings(
        TIMEZONE="UTC",
        SCHEDULER_ENABLED=False,
        ALLOWANCE_MAX_WORKERS=1,
        ALLOWANCE_MAX_TX_ATTEMPTS=3,
        ALLOWANCE_PAGE_SIZE=50,
    )


@pytest.fixture
def fixed_clock():
    return lambda: MONDAY


@pytest.fixture
def seed_account(session_factory):
    """Create a dependent account (+ settings, + wallet) and return its id"""

    def _seed(
        guardian_id: int = 1,
        amount: str = "50",
        day: str = "Monday",
        enabled: bool = True,
        last_processed: datetime | None = None,
        with_settings: bool = True,
        with_wallet: bool = True,
        balance: str = "0",
    ) -> int:
        with session_factory() as db:
            if db.get(Guardian, guardian_id) is None:
                db.add(Guardian(id=guardian_id, email=f"guardian{guardian_id}@example.com"))
            account = DependentAccount(guardian_id=guardian_id, display_name="Child")
            db.add(account)
            db.flush()
            account_id = account.id

            if with_settings:
                db.add(AllowanceSettings(
                    account_id=account_id,
                    weekly_amount=Decimal(amount),
                    day_of_week=day,
                    is_enabled=enabled,
                    last_processed=last_processed,
                ))
            if with_wallet:
                db.add(Wallet(
                    id=f"wallet-{account_id:03d}",
                    account_id=account_id,
                    currency="SAR",
                    total_balance=Decimal(balance),
                    spending_balance=Decimal(balance),
                ))
            db.commit()
        return account_id

    return _seed


@pytest.fixture
def read_wallet(session_factory):
    def _read(account_id: int) -> Wallet | None:
        with session_factory() as db:
            return db.execute(
                select(Wallet).where(Wallet.account_id == account_id)
            ).scalar_one_or_none()

    return _read


@pytest.fixture
def read_ledger(session_factory):
    def _read(account_id: int) -> list[LedgerEntry]:
        with session_factory() as db:
            return list(db.execute(
                select(LedgerEntry).where(LedgerEntry.account_id == account_id)
            ).scalars())

    return _read


@pytest.fixture
def read_settings(session_factory):
    def _read(account_id: int) -> AllowanceSettings | None:
        with session_factory() as db:
            return db.get(AllowanceSettings, account_id)

    return _read
