"""
Utility functions and constants for receipt processing.
"""

import datetime as dt
import hashlib
import re
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Optional

# File type constants
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}
PDF_EXTS = {".pdf"}

# Sentinel defaults
UNKNOWN_VENDOR = "Unknown Vendor"
UNKNOWN_VENDOR_ALIASES = {"unknown vendor", "unknown store", "unknown", "unknown_merchant"}
UNKNOWN_ITEM = "Unknown Item"
NO_ITEMS_PLACEHOLDER = "No items detected"
ZERO_PRICE = "0.00"
DEFAULT_CATEGORY = "Other"

# Canonical date format for every stage
DATE_FORMAT = "%m/%d/%Y"

_MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec"

# Ordered date table: (regex, group order). Order is priority; the same regex
# listed twice means the later reading is used only when the earlier one is
# not a valid calendar date.
DATE_PATTERNS = [
    (re.compile(r"\b(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\b"), "ymd"),           # 2024-01-15
    (re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})\b"), "mdy"),           # 01/15/2024
    (re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})\b"), "dmy"),           # 15/01/2024
    (re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{2})\b(?![-/.:]\d)"), "mdy"),  # 01/15/24
    (re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{2})\b(?![-/.:]\d)"), "dmy"),
    (re.compile(rf"\b({_MONTHS})[a-z]*\.?\s+(\d{{1,2}}),?\s+(\d{{4}})\b", re.IGNORECASE), "Mdy"),  # Jan 15, 2024
    (re.compile(rf"\b(\d{{1,2}})\s+({_MONTHS})[a-z]*\.?,?\s+(\d{{4}})\b", re.IGNORECASE), "dMy"),  # 15 Jan 2024
]

TIME_PATTERN = re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\s*(?:[AaPp]\.?[Mm]\.?)?\b")

# A price is digits with exactly two decimals, optionally with a currency
# symbol and thousands separators. Percentages and longer decimals are not prices.
PRICE_PATTERN = re.compile(
    r"(?<![\d.,])[$€£]?\s?(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?!\d|%|\.\d)"
)

_PRICE_STRIP = re.compile(r"[\s,$€£¥]")
_NUMERIC_TOKEN = re.compile(r"\d+\.?\d*")
_LEADING_INT = re.compile(r"^\s*(\d+)")
_CENTS = Decimal("0.01")


def normalize_price(raw) -> str:
    """
    Normalize a messy price token to a two-decimal string.

    Strips currency symbols, thousands separators and whitespace, then takes
    the first numeric token. Returns "0.00" when nothing numeric is found.
    """
    if raw is None or isinstance(raw, bool):
        return ZERO_PRICE
    s = _PRICE_STRIP.sub("", str(raw))
    m = _NUMERIC_TOKEN.search(s)
    if not m:
        return ZERO_PRICE
    try:
        value = float(m.group(0))
    except ValueError:
        return ZERO_PRICE
    return f"{value:.2f}"


def price_to_decimal(price: Optional[str]) -> Decimal:
    """Convert a normalized price string to Decimal for arithmetic."""
    return Decimal(normalize_price(price))


def multiply_price(price: str, quantity: int) -> str:
    """Line total for a unit price and quantity, formatted like a price."""
    total = (price_to_decimal(price) * quantity).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return f"{total:.2f}"


def divide_price(price: str, quantity: int) -> str:
    """Unit price from a line total and a quantity."""
    if quantity <= 1:
        return normalize_price(price)
    unit = (price_to_decimal(price) / quantity).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return f"{unit:.2f}"


def coerce_quantity(value) -> int:
    """Integer-parse-or-default a quantity; the result is always >= 1."""
    if value is None or isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        try:
            qty = int(value)
        except (ValueError, OverflowError):
            return 1
        return qty if qty >= 1 else 1
    m = _LEADING_INT.match(str(value))
    if not m:
        return 1
    qty = int(m.group(1))
    return qty if qty >= 1 else 1


def today_str(today: Optional[dt.date] = None) -> str:
    """Return the injected (or current) date in canonical format."""
    return (today or dt.date.today()).strftime(DATE_FORMAT)


def _build_date(groups, order: str) -> Optional[dt.date]:
    """Interpret regex groups according to the pattern's group order."""
    values = {}
    for key, raw in zip(order, groups):
        if key == "M":
            values["m"] = dt.datetime.strptime(raw[:3].title(), "%b").month
        else:
            values[key] = int(raw)
    year = values["y"]
    if year < 100:
        year += 2000
    try:
        return dt.date(year, values["m"], values["d"])
    except ValueError:
        return None


def find_date(text: str) -> Optional[str]:
    """
    Find the first date in a single line of text.

    Patterns are tried in table order; the first one giving a valid calendar
    date wins. Returns the canonical MM/DD/YYYY string or None.
    """
    if not text:
        return None
    for pattern, order in DATE_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        parsed = _build_date(m.groups(), order)
        if parsed is not None:
            return parsed.strftime(DATE_FORMAT)
    return None


def parse_date_text(text) -> Optional[str]:
    """Canonicalize a free-form date value (e.g. from OCR or the model)."""
    if text is None:
        return None
    return find_date(str(text).strip())


def iso_from_canonical(date_text: str) -> Optional[str]:
    """Convert a canonical MM/DD/YYYY date to YYYY-MM-DD."""
    try:
        return dt.datetime.strptime(date_text, DATE_FORMAT).date().isoformat()
    except (TypeError, ValueError):
        return None


def slugify(s: str) -> str:
    """Convert string to filesystem-safe slug."""
    return re.sub(r"[^a-z0-9]+", "-", s.lower()).strip("-")


def sha1_file(path: Path) -> str:
    """Calculate SHA1 hash of file."""
    h = hashlib.sha1()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def money_fmt(v: Optional[str]) -> str:
    """Format a price string as currency."""
    return f"${price_to_decimal(v):,.2f}" if v is not None else ""
