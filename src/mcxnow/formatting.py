"""Text formatting for quote values.

Exchange feeds deliver prices as strings such as ``"1,23,456.75"``. These
helpers never round: extra fraction digits are cut off.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

_EXPIRY = re.compile(r"^(\d{1,2})([A-Z]{3})(\d{4})$")

UP_ARROW = "▲"
DOWN_ARROW = "▼"


def to_float(value: Any) -> float | None:
    if value is None:
        return None
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _split_sign(raw: Any) -> tuple[str, str]:
    text = str(raw).strip()
    if text[:1] in {"-", "+"}:
        return text[0], text[1:].replace(",", "")
    return "", text.replace(",", "")


def limit_fraction_digits(raw: Any, max_fraction_digits: int = 5) -> str:
    """Drop fraction digits beyond ``max_fraction_digits``; no grouping."""
    if not str(raw).strip():
        return ""
    sign, text = _split_sign(raw)
    int_part, dot, frac_part = text.partition(".")
    if not dot:
        return f"{sign}{int_part}"
    frac_part = frac_part[:max_fraction_digits]
    return f"{sign}{int_part}.{frac_part}" if frac_part else f"{sign}{int_part}"


def format_indian_number(raw: Any, max_fraction_digits: int = 5) -> str:
    """Group digits the Indian way: ``12345678.9`` -> ``1,23,45,678.9``."""
    if not str(raw).strip():
        return ""
    sign, text = _split_sign(raw)
    int_part, _, frac_part = text.partition(".")
    frac_part = frac_part[:max_fraction_digits]

    if len(int_part) > 3:
        lead, last3 = int_part[:-3], int_part[-3:]
        groups: list[str] = []
        while len(lead) > 2:
            groups.insert(0, lead[-2:])
            lead = lead[:-2]
        if lead:
            groups.insert(0, lead)
        int_part = ",".join(groups) + "," + last3

    return f"{sign}{int_part}.{frac_part}" if frac_part else f"{sign}{int_part}"


def format_expiry(raw: Any) -> str:
    """``29AUG2025`` -> ``29 AUG'25 FUT``; anything else is returned unchanged."""
    match = _EXPIRY.match(str(raw).strip().upper())
    if match is None:
        return str(raw)
    day, month, year = match.groups()
    return f"{day.zfill(2)} {month}'{year[2:]} FUT"


def _plain_number(value: Any) -> str:
    """Decimal text for ``value`` as the feed spelled it; floats never use exponents."""
    if to_float(value) is None:
        return ""
    if isinstance(value, float):
        return format(Decimal(repr(value)), "f")
    return str(value).strip()


def format_change(amount: Any, pct: Any, *, up: bool | None = None) -> str:
    """Arrow, amount and percentage, e.g. ``▲ 1,250.5 (0.42%)``.

    ``amount`` and ``pct`` may be the raw feed strings, which keeps their
    trailing zeros, or floats. Blank or unparseable values are left out.
    """
    if up is None:
        value = to_float(amount)
        if value is None:
            value = to_float(pct) or 0
        up = value >= 0
    arrow = UP_ARROW if up else DOWN_ARROW
    amount_text = _plain_number(amount)
    pct_text = _plain_number(pct)
    if amount_text:
        amount_text = format_indian_number(amount_text)
    if pct_text:
        pct_text = limit_fraction_digits(pct_text)
    if amount_text and pct_text:
        return f"{arrow} {amount_text} ({pct_text}%)"
    if amount_text:
        return f"{arrow} {amount_text}"
    if pct_text:
        return f"{arrow} {pct_text}%"
    return arrow
