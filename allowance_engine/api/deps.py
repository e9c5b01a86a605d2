"""
FastAPI dependencies (session factory, trigger authentication)
"""
import secrets
from datetime import datetime
from typing import Callable

from fastapi import Depends, Header, HTTPException, status

from allowance_engine.config import Settings, get_settings
from allowance_engine.domain.allowance import utc_now
from allowance_engine.infrastructure.db.session import get_session_factory as _get_session_factory


# Re-export для удобства (и для dependency_overrides в тестах)
get_session_factory = _get_session_factory


def get_clock() -> Callable[[], datetime]:
    """Источник текущего времени для batch run (UTC)"""
    return utc_now


def require_trigger_token(
    x_trigger_token: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Проверить X-Trigger-Token для ручного запуска

    Если ALLOWANCE_TRIGGER_TOKEN пустой - проверка отключена.

    Raises:
        HTTPException(401): токен не совпадает
    """
    expected = settings.ALLOWANCE_TRIGGER_TOKEN
    if not expected:
        return
    if not x_trigger_token or not secrets.compare_digest(x_trigger_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid trigger token"
        )
