from __future__ import annotations
import math
from datetime import date, datetime
from typing import Optional, Union

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "CAD": "CA$",
}
# devises proposées dans le formulaire
CURRENCIES = tuple(CURRENCY_SYMBOLS)


def format_money(value: float, currency: str) -> str:
    try:
        v = float(value)
    except (TypeError, ValueError):
        v = 0.0
    if not math.isfinite(v):
        v = 0.0
    code = (currency or "").strip().upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} " if code else "")
    amount = f"{abs(v):,.2f}"
    # pas de "-0.00"
    sign = "-" if v < 0 and amount.strip("0.,") else ""
    return f"{sign}{symbol}{amount}"


def format_date(value: Union[date, str, None]) -> str:
    """`MMM dd, yyyy` ; chaîne vide si pas de date, valeur brute si illisible."""
    if not value:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%b %d, %Y")
    try:
        return date.fromisoformat(str(value)).strftime("%b %d, %Y")
    except ValueError:
        return str(value)


def format_qty(qty: Optional[float]) -> str:
    # 2.0 -> "2", 1.5 -> "1.5"
    return f"{(qty or 0):g}"
