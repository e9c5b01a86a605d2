"""
Allowance repository - enumeration of guardians/accounts and validated schedule reads

Строки БД не используются напрямую: расписание проходит через pydantic-модель
AllowanceSettingsRecord и превращается в доменный AllowanceSchedule.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from allowance_engine.domain.allowance import AllowanceSchedule, as_aware
from allowance_engine.infrastructure.db.models import (
    AllowanceSettings,
    DependentAccount,
    Guardian,
    Wallet,
)


class AccountStateError(RuntimeError):
    """Account records are missing or malformed (per-account failure)"""
    pass


class AllowanceEnumerationError(RuntimeError):
    """Guardians/accounts could not be listed - the whole run is aborted"""
    pass


@dataclass(frozen=True)
class AccountRef:
    guardian_id: int
    account_id: int


class AllowanceSettingsRecord(BaseModel):
    """Schema of an allowance_settings row as read from the store"""
    model_config = ConfigDict(from_attributes=True)

    account_id: int
    weekly_amount: Decimal
    day_of_week: str
    is_enabled: bool
    last_processed: Optional[datetime] = None

    @field_validator("last_processed")
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_aware(v) if v is not None else None

    def to_domain(self) -> AllowanceSchedule:
        return AllowanceSchedule(
            account_id=self.account_id,
            scheduled_weekday=self.day_of_week,
            amount=self.weekly_amount,
            enabled=self.is_enabled,
            watermark=self.last_processed,
        )


class AllowanceRepository:
    """
    Repository для чтения guardians / accounts / allowance settings

    Keyset pagination by primary key: pages are stable while rows are added.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_guardian_ids(self, after_id: int = 0, limit: int = 200) -> List[int]:
        stmt = (
            select(Guardian.id)
            .where(Guardian.id > after_id)
            .order_by(Guardian.id.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())

    def list_account_ids(self, guardian_id: int, after_id: int = 0, limit: int = 200) -> List[int]:
        stmt = (
            select(DependentAccount.id)
            .where(
                DependentAccount.guardian_id == guardian_id,
                DependentAccount.id > after_id,
            )
            .order_by(DependentAccount.id.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())

    def get_settings_row(self, account_id: int) -> Optional[AllowanceSettings]:
        return self.db.get(AllowanceSettings, account_id)

    def get_schedule(self, account_id: int) -> Optional[AllowanceSchedule]:
        """
        Получить расписание account'а

        Returns:
            AllowanceSchedule или None если настроек нет

        Raises:
            AccountStateError: если строка не проходит валидацию
        """
        row = self.get_settings_row(account_id)
        if row is None:
            return None
        return schedule_from_row(row)

    def get_wallet(self, account_id: int) -> Optional[Wallet]:
        return self.db.execute(
            select(Wallet).where(Wallet.account_id == account_id)
        ).scalar_one_or_none()


def schedule_from_row(row: AllowanceSettings) -> AllowanceSchedule:
    try:
        return AllowanceSettingsRecord.model_validate(row).to_domain()
    except ValidationError as exc:
        raise AccountStateError(
            f"Invalid allowance settings for account {row.account_id}: {exc}"
        ) from exc


def iter_account_refs(
    session_factory: Callable[[], Session],
    page_size: int = 200,
) -> Iterator[AccountRef]:
    """
    Iterate over every (guardian, account) pair, one short session per page.

    Raises:
        AllowanceEnumerationError: if a page cannot be read
    """
    after_guardian = 0
    while True:
        guardian_ids = _read_page(
            session_factory,
            lambda repo: repo.list_guardian_ids(after_id=after_guardian, limit=page_size),
            "guardians",
        )
        if not guardian_ids:
            return

        for guardian_id in guardian_ids:
            after_account = 0
            while True:
                account_ids = _read_page(
                    session_factory,
                    lambda repo: repo.list_account_ids(guardian_id, after_id=after_account, limit=page_size),
                    f"accounts of guardian {guardian_id}",
                )
                for account_id in account_ids:
                    yield AccountRef(guardian_id=guardian_id, account_id=account_id)
                if len(account_ids) < page_size:
                    break
                after_account = account_ids[-1]

        if len(guardian_ids) < page_size:
            return
        after_guardian = guardian_ids[-1]


def _read_page(session_factory, query, what: str) -> List[int]:
    try:
        with session_factory() as db:
            return query(AllowanceRepository(db))
    except SQLAlchemyError as exc:
        raise AllowanceEnumerationError(f"Failed to list {what}: {exc}") from exc
