"""
Map structured expense fields onto receipt fields and merge with heuristics.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from .confidence import score
from .logging import get_logger
from .models import FieldValue, LineItem, ParsedReceipt, RawExtraction
from .parsers import parse_heuristic
from .utils import (
    NO_ITEMS_PLACEHOLDER,
    UNKNOWN_ITEM,
    UNKNOWN_VENDOR,
    ZERO_PRICE,
    normalize_price,
    parse_date_text,
    today_str,
)

logger = get_logger(__name__)

# Structured values below this OCR confidence (0-100) lose to the heuristic value
MIN_STRUCTURED_CONFIDENCE = 50.0

# Typed keys per target field, in priority order
VENDOR_KEYS = ("VENDOR_NAME", "MERCHANT_NAME", "NAME")
DATE_KEYS = ("INVOICE_RECEIPT_DATE", "DATE")
TOTAL_KEYS = ("TOTAL", "AMOUNT_PAID")
SUBTOTAL_KEYS = ("SUBTOTAL",)
TAX_KEYS = ("TAX",)
ITEM_NAME_KEYS = ("ITEM", "DESCRIPTION", "PRODUCT_CODE")
ITEM_PRICE_KEYS = ("UNIT_PRICE", "PRICE", "AMOUNT")
ITEM_QUANTITY_KEYS = ("QUANTITY",)


@dataclass
class PartialReceipt:
    """
    Receipt fields taken from structured OCR output only.

    Each scalar is a (value, confidence) pair, or None when the OCR service did
    not return that field.
    """
    merchant: Optional[Tuple[str, float]] = None
    date: Optional[Tuple[str, float]] = None
    total: Optional[Tuple[str, float]] = None
    subtotal: Optional[Tuple[str, float]] = None
    tax: Optional[Tuple[str, float]] = None
    items: List[LineItem] = field(default_factory=list)

    def value(self, name: str) -> Optional[str]:
        pair = getattr(self, name)
        return pair[0] if pair else None


def _first(fields: Dict[str, FieldValue], keys) -> Optional[FieldValue]:
    for key in keys:
        fv = fields.get(key)
        if fv is not None:
            return fv
    return None


def _price(fv: Optional[FieldValue]) -> Optional[Tuple[str, float]]:
    return (normalize_price(fv.value), fv.confidence) if fv else None


def reconcile(raw: RawExtraction) -> PartialReceipt:
    """
    Map typed summary fields and line items onto receipt fields.

    No text scanning happens here; fields the OCR service did not return
    stay None.
    """
    vendor = raw.summary(*VENDOR_KEYS)
    date_fv = raw.summary(*DATE_KEYS)
    date = None
    if date_fv:
        # Keep the OCR text when it is not a recognizable date
        date = (parse_date_text(date_fv.value) or date_fv.value.strip(), date_fv.confidence)

    items = []
    for fields in raw.line_items:
        name = _first(fields, ITEM_NAME_KEYS)
        price = _first(fields, ITEM_PRICE_KEYS)
        quantity = _first(fields, ITEM_QUANTITY_KEYS)
        items.append(LineItem.priced(
            name=name.value.strip() if name else UNKNOWN_ITEM,
            price=price.value if price else ZERO_PRICE,
            quantity=quantity.value if quantity else 1,
        ))

    return PartialReceipt(
        merchant=(vendor.value.strip(), vendor.confidence) if vendor else None,
        date=date,
        total=_price(raw.summary(*TOTAL_KEYS)),
        subtotal=_price(raw.summary(*SUBTOTAL_KEYS)),
        tax=_price(raw.summary(*TAX_KEYS)),
        items=items,
    )


def _pick(structured: Optional[Tuple[str, float]], heuristic: Optional[str],
          heuristic_found: bool) -> Tuple[Optional[str], str]:
    """Return (value, source) for one field."""
    if structured and structured[0] and structured[1] >= MIN_STRUCTURED_CONFIDENCE:
        return structured[0], "structured"
    if heuristic_found and heuristic:
        return heuristic, "heuristic"
    if structured and structured[0]:
        return structured[0], "structured"
    return None, "default"


def merge_candidates(structured: PartialReceipt, heuristic: ParsedReceipt,
                     today: Optional[dt.date] = None) -> ParsedReceipt:
    """
    Combine structured and heuristic candidates field by field.

    A structured value wins when present with confidence >= 50; otherwise the
    heuristic value (if the parser actually found one); otherwise a low
    confidence structured value; otherwise the sentinel default.
    """
    found = heuristic.field_confidence
    merchant, merchant_src = _pick(structured.merchant, heuristic.merchant, found.get("merchant", 0) > 0)
    date, date_src = _pick(structured.date, heuristic.date, found.get("date", 0) > 0)
    total, total_src = _pick(structured.total, heuristic.total, found.get("total", 0) > 0)
    subtotal, _ = _pick(structured.subtotal, heuristic.subtotal, heuristic.subtotal is not None)
    tax, _ = _pick(structured.tax, heuristic.tax, heuristic.tax is not None)

    if structured.items:
        items, items_src = list(structured.items), "structured"
    else:
        items = [item for item in heuristic.items if item.name != NO_ITEMS_PLACEHOLDER]
        items_src = "heuristic" if items else "default"

    sources = {"merchant": merchant_src, "date": date_src, "total": total_src, "items": items_src}
    logger.debug("Merged candidate sources: %s", sources)

    return ParsedReceipt(
        merchant=merchant or UNKNOWN_VENDOR,
        date=date or today_str(today),
        total=total or ZERO_PRICE,
        subtotal=subtotal,
        tax=tax,
        items=items,
        field_confidence=dict(heuristic.field_confidence),
        metadata={"sources": sources},
    )


def fallback_receipt(raw: RawExtraction, today: Optional[dt.date] = None,
                     known_chains: Optional[Sequence[Tuple[Pattern, str]]] = None) -> ParsedReceipt:
    """Best receipt obtainable without the model: structured fields over heuristics."""
    heuristic = parse_heuristic(raw.raw_text, today=today, known_chains=known_chains)
    receipt = merge_candidates(reconcile(raw), heuristic, today=today)
    receipt.metadata.update({
        "processed_by": "fallback",
        "structured_fields_found": len(raw.summary_fields),
        "structured_items_found": len(raw.line_items),
    })
    receipt.confidence = score(receipt, raw, today=today)
    return receipt
