"""
Ledger entry domain entity - builds the immutable audit record of a disbursement
"""
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Any

ENTRY_TYPE_DEPOSIT = "deposit"
CATEGORY_WEEKLY_ALLOWANCE = "weekly_allowance"

# Balance buckets
BUCKET_TOTAL = "total"
BUCKET_SPENDING = "spending"


def allowance_idempotency_key(account_id: int, day: date) -> str:
    """One allowance per account per calendar day."""
    return f"allowance-{account_id}-{day.isoformat()}"


def allowance_entry(
    account_id: int,
    wallet_id: str,
    amount: Decimal,
    weekday: str,
    timestamp: datetime,
    local_day: date,
) -> Dict[str, Any]:
    """
    Собрать запись журнала для еженедельного начисления

    Args:
        account_id: ID dependent account
        wallet_id: ID кошелька
        amount: Сумма начисления
        weekday: День недели из расписания (для описания)
        timestamp: Время коммита
        local_day: Календарный день в reference timezone (для idempotency key)

    Returns:
        Поля для LedgerEntry
    """
    return {
        "id": str(uuid.uuid4()),
        "account_id": account_id,
        "wallet_id": wallet_id,
        "type": ENTRY_TYPE_DEPOSIT,
        "category": CATEGORY_WEEKLY_ALLOWANCE,
        "amount": amount,
        "description": f"Weekly Allowance - {weekday}",
        "timestamp": timestamp,
        "from_bucket": BUCKET_TOTAL,
        "to_bucket": BUCKET_SPENDING,
        "idempotency_key": allowance_idempotency_key(account_id, local_day),
    }
