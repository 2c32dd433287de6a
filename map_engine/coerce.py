"""Value coercion helpers for form input and AI responses.

Dates are normalized to ``datetime.date``; amounts accept currency symbols,
thousands separators and parenthesized negatives.
"""

from __future__ import annotations

import datetime as dt
from typing import Union

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d", "%m/%d/%y")


def parse_date(value: Union[str, dt.date, dt.datetime]) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    # ISO timestamps keep only the date part
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date format: {value}")


def parse_amount(value: Union[str, int, float]) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value}")
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        v = str(value).replace(",", "").replace("$", "").strip()
        # Some statements wrap negatives in parentheses, e.g., (12.34)
        if v.startswith("(") and v.endswith(")"):
            v = "-" + v[1:-1]
        try:
            amount = float(v)
        except ValueError as exc:
            raise ValueError(f"Invalid amount: {value}") from exc
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValueError(f"Invalid amount: {value}")
    return amount
