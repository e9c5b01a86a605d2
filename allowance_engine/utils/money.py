"""
Unified money formatting for logs and descriptions.

Usage:
    from allowance_engine.utils.money import format_money

    format_money(1500, "SAR")      -> "1 500 SAR"
    format_money2(50, "SAR")       -> "50.00 SAR"
"""
from decimal import Decimal


def format_money(amount, currency: str | None = "SAR", decimals: int = 0) -> str:
    """
    Отформатировать сумму с пробелами-разделителями тысяч и суффиксом валюты.

    Args:
        amount: число (int / float / Decimal / str)
        currency: ISO-код валюты (SAR, USD, EUR …)
        decimals: знаков после запятой

    Returns:
        "1 500 SAR"
    """
    if isinstance(amount, str):
        amount = Decimal(amount)
    fmt = f"{{:,.{decimals}f}}"
    formatted = fmt.format(amount).replace(",", " ")
    return f"{formatted} {currency}" if currency else formatted


def format_money2(amount, currency: str | None = "SAR") -> str:
    """Формат с 2 знаками после запятой (для балансов кошельков)."""
    return format_money(amount, currency, decimals=2)
