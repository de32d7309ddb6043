"""
Turn free-form model output into a normalized receipt.
"""

import datetime as dt
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from .confidence import score
from .models import LineItem, ParsedReceipt, RawExtraction
from .reconcile import fallback_receipt
from .strategies import StrategyResult, run_strategies
from .utils import (
    UNKNOWN_ITEM,
    UNKNOWN_VENDOR,
    UNKNOWN_VENDOR_ALIASES,
    ZERO_PRICE,
    normalize_price,
    parse_date_text,
    today_str,
)

# Greedy: from the first "{" to the last "}"
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

_NULL_TOKENS = {"", "null", "none", "n/a", "unknown"}


def extract_json_object(model_text: str) -> Dict[str, Any]:
    """
    Parse the brace-delimited JSON object embedded in model output.

    Raises:
        ValueError: no braces, invalid or too deeply nested JSON, or JSON
            that is not an object
    """
    m = JSON_OBJECT_PATTERN.search(model_text or "")
    if not m:
        raise ValueError("No JSON found in model response")
    try:
        data = json.loads(m.group(0))
    except RecursionError:
        raise ValueError("Model JSON nested too deeply") from None
    if not isinstance(data, dict):
        raise ValueError(f"Model JSON is a {type(data).__name__}, not an object")
    return data


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional_price(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in _NULL_TOKENS:
        return None
    if value is None:
        return None
    return normalize_price(value)


def _normalize_items(raw_items: Any) -> List[LineItem]:
    if not isinstance(raw_items, list):
        return []
    items = []
    for entry in raw_items:
        if not isinstance(entry, Mapping):
            continue
        price = normalize_price(entry.get("price"))
        line_total = entry.get("lineTotal") or entry.get("line_total") or price
        items.append(LineItem(
            name=_text(entry.get("name") or entry.get("description")) or UNKNOWN_ITEM,
            price=price,
            quantity=entry.get("quantity"),
            line_total=normalize_price(line_total),
        ))
    return items


def normalize_model_output(data: Mapping[str, Any], today: Optional[dt.date] = None) -> ParsedReceipt:
    """Apply sentinel defaults and price/quantity cleanup to parsed model JSON."""
    merchant = _text(data.get("merchant") or data.get("vendor"))
    if not merchant or merchant.lower() in UNKNOWN_VENDOR_ALIASES:
        merchant = UNKNOWN_VENDOR

    date = _text(data.get("date"))
    if date.lower() in _NULL_TOKENS:
        date = today_str(today)
    else:
        date = parse_date_text(date) or date

    total = data.get("total")
    total = ZERO_PRICE if _text(total).lower() in _NULL_TOKENS else normalize_price(total)

    return ParsedReceipt(
        merchant=merchant,
        date=date,
        total=total,
        subtotal=_optional_price(data.get("subtotal")),
        tax=_optional_price(data.get("tax")),
        items=_normalize_items(data.get("items")),
    )


def interpret(model_text: str, fallback: RawExtraction, today: Optional[dt.date] = None,
              known_chains: Optional[Sequence[Tuple[Pattern, str]]] = None) -> ParsedReceipt:
    """
    Interpret model output for one receipt, falling back to structured and
    heuristic parsing of `fallback` when the output holds no usable JSON.

    Never raises for malformed model output.
    """
    def model_json() -> StrategyResult:
        try:
            data = extract_json_object(model_text)
        except ValueError as e:
            return StrategyResult.failure(str(e))
        receipt = normalize_model_output(data, today=today)
        receipt.metadata = {
            "processed_by": "model",
            "structured_fields_found": len(fallback.summary_fields),
            "structured_items_found": len(fallback.line_items),
        }
        receipt.confidence = score(receipt, fallback, today=today)
        return StrategyResult.success(receipt)

    def fallback_chain() -> StrategyResult:
        return StrategyResult.success(fallback_receipt(fallback, today=today, known_chains=known_chains))

    _, receipt = run_strategies([
        ("model-json", model_json),
        ("fallback", fallback_chain),
    ])
    return receipt
