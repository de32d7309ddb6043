"""
Aggregate confidence for a parsed receipt.

One point for each signal: a real merchant, a date other than today's default,
a positive total, at least one real item, and structured summary fields from
the OCR service. The score is points / 5 on a 0-1 scale, two decimals.
"""

import datetime as dt
from typing import Optional

from .models import ParsedReceipt, RawExtraction
from .utils import price_to_decimal, today_str

MAX_POINTS = 5


def score(receipt: ParsedReceipt, raw: Optional[RawExtraction] = None,
          today: Optional[dt.date] = None) -> float:
    """Score a receipt in [0, 1] from presence signals."""
    points = 0
    if receipt.has_known_merchant:
        points += 1
    if receipt.date and receipt.date != today_str(today):
        points += 1
    if price_to_decimal(receipt.total) > 0:
        points += 1
    if receipt.real_items:
        points += 1
    if raw is not None and raw.summary_fields:
        points += 1
    return min(1.0, round(points / MAX_POINTS, 2))
