"""
SQLAlchemy ORM models (guardians, dependent accounts, allowance settings, wallets, ledger)
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import String, Integer, Text, TIMESTAMP, func, Boolean, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from allowance_engine.infrastructure.db.session import Base


class Guardian(Base):
    """
    Guardian (parent) - owns dependent accounts and funds their allowances
    """
    __tablename__ = "guardians"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class DependentAccount(Base):
    """
    Dependent (child) account - one wallet, optional allowance settings
    """
    __tablename__ = "dependent_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    guardian_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class AllowanceSettings(Base):
    """
    Weekly allowance schedule of one dependent account

    last_processed - watermark последнего успешного начисления.
    version_id - счётчик для optimistic concurrency (UPDATE ... WHERE version_id = ?)
    """
    __tablename__ = "allowance_settings"

    account_id: Mapped[int] = mapped_column(primary_key=True)

    weekly_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=2),
        nullable=False,
        server_default="0"
    )
    day_of_week: Mapped[str] = mapped_column(String(16), nullable=False, server_default="Sunday")  # Sunday..Saturday
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    last_processed: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    __mapper_args__ = {"version_id_col": version_id}


class Wallet(Base):
    """
    Wallet of a dependent account: total balance and the spendable bucket
    """
    __tablename__ = "wallets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # "wallet001"
    account_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="SAR")
    total_balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=2),
        nullable=False,
        server_default="0"
    )
    spending_balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=2),
        nullable=False,
        server_default="0"
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        CheckConstraint("total_balance >= 0", name="ck_wallets_total_balance_non_negative"),
        CheckConstraint("spending_balance >= 0", name="ck_wallets_spending_balance_non_negative"),
    )
    __mapper_args__ = {"version_id_col": version_id}


class LedgerEntry(Base):
    """
    Append-only audit record of a balance-affecting event (never updated or deleted)
    """
    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    wallet_id: Mapped[str] = mapped_column(String(64), nullable=False)

    type: Mapped[str] = mapped_column(String(32), nullable=False)  # deposit
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)  # weekly_allowance
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        index=True
    )
    from_bucket: Mapped[str] = mapped_column(String(32), nullable=False)
    to_bucket: Mapped[str] = mapped_column(String(32), nullable=False)

    # "allowance-{account_id}-{YYYY-MM-DD}" - одно начисление в день
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )
