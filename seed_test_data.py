"""
Seed demo data: one guardian with three dependents scheduled for today.
Run:  python seed_test_data.py
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from allowance_engine.config import get_settings
from allowance_engine.domain.allowance import canonical_weekday
from allowance_engine.infrastructure.db.session import get_session_factory
from allowance_engine.infrastructure.db.models import (
    Guardian, DependentAccount, AllowanceSettings, Wallet,
)

settings = get_settings()
today = datetime.now(settings.get_timezone())
TODAY_NAME = canonical_weekday(today.date())

db = get_session_factory()()

guardian = db.query(Guardian).filter_by(email="guardian@allowance.local").first()
if guardian:
    print(f"Guardian id={guardian.id} already exists, nothing to do")
    db.close()
    raise SystemExit(0)

guardian = Guardian(email="guardian@allowance.local")
db.add(guardian)
db.flush()

# (name, weekly amount, day, enabled, last processed)
children = [
    ("Sara", Decimal("50"), TODAY_NAME, True, None),
    ("Omar", Decimal("30"), TODAY_NAME, True, (today - timedelta(days=7)).astimezone(timezone.utc)),
    ("Lina", Decimal("20"), TODAY_NAME, False, None),
]

for name, amount, day, enabled, last in children:
    child = DependentAccount(guardian_id=guardian.id, display_name=name)
    db.add(child)
    db.flush()

    db.add(AllowanceSettings(
        account_id=child.id,
        weekly_amount=amount,
        day_of_week=day,
        is_enabled=enabled,
        last_processed=last,
    ))
    db.add(Wallet(
        id=f"wallet-{child.id:03d}",
        account_id=child.id,
        currency="SAR",
        total_balance=Decimal("0"),
        spending_balance=Decimal("0"),
    ))

db.commit()
print(f"✓ Seeded guardian id={guardian.id} with {len(children)} dependents (allowance day: {TODAY_NAME})")
db.close()
