"""
Запустить обработку еженедельных пособий один раз (cron / systemd timer / вручную)

Run:  python run_allowances.py
Exit code 1 if guardians/accounts could not be enumerated.
"""
import json
import logging
import sys

from allowance_engine.infrastructure.db.session import get_session_factory
from allowance_engine.application.allowance_batch import AllowanceBatchCoordinator

logging.basicConfig(level=logging.INFO)

try:
    summary = AllowanceBatchCoordinator(get_session_factory()).run()
except Exception as e:
    print(f"✗ ОШИБКА: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)

print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
print(f"✓ Processed: {summary.processed}, skipped: {summary.skipped}, errors: {summary.errored} ({summary.day})")
