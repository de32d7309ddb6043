"""
Data models for receipt processing.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .utils import (
    NO_ITEMS_PLACEHOLDER,
    UNKNOWN_ITEM,
    UNKNOWN_VENDOR,
    UNKNOWN_VENDOR_ALIASES,
    ZERO_PRICE,
    DEFAULT_CATEGORY,
    coerce_quantity,
    iso_from_canonical,
    multiply_price,
    normalize_price,
    price_to_decimal,
)


def normalize_field_key(key: str) -> str:
    """Normalize an OCR field key to upper-case snake form (e.g. VENDOR_NAME)."""
    return "_".join(str(key).replace("-", " ").split()).upper()


@dataclass(frozen=True)
class FieldValue:
    """A typed value from the expense-extraction service (confidence 0-100)."""
    value: str
    confidence: float = 0.0

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["FieldValue"]:
        """Accept either {"value", "confidence"} mappings or bare values."""
        if raw is None:
            return None
        if isinstance(raw, FieldValue):
            return raw
        if isinstance(raw, Mapping):
            value = raw.get("value")
            if value is None or str(value).strip() == "":
                return None
            try:
                confidence = float(raw.get("confidence") or 0.0)
            except (TypeError, ValueError):
                confidence = 0.0
            return cls(value=str(value), confidence=confidence)
        if str(raw).strip() == "":
            return None
        return cls(value=str(raw))


def _normalize_fields(raw: Optional[Mapping[str, Any]]) -> Dict[str, FieldValue]:
    fields: Dict[str, FieldValue] = {}
    for key, value in (raw or {}).items():
        fv = FieldValue.from_raw(value)
        if fv is not None:
            fields[normalize_field_key(key)] = fv
    return fields


@dataclass(frozen=True)
class RawExtraction:
    """OCR output for one receipt image: summary fields, line items, raw text."""
    summary_fields: Dict[str, FieldValue] = field(default_factory=dict)
    line_items: List[Dict[str, FieldValue]] = field(default_factory=list)
    raw_text: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RawExtraction":
        """Build from the OCR collaborator's payload (camelCase or snake_case)."""
        summary = data.get("summaryFields", data.get("summary_fields"))
        items = data.get("lineItems", data.get("line_items")) or []
        raw_text = data.get("rawText", data.get("raw_text")) or ""
        line_items = []
        for item in items:
            normalized = _normalize_fields(item)
            if normalized:
                line_items.append(normalized)
        return cls(
            summary_fields=_normalize_fields(summary),
            line_items=line_items,
            raw_text=str(raw_text),
        )

    @classmethod
    def from_text(cls, raw_text: str) -> "RawExtraction":
        """Wrap plain OCR text that came without structured fields."""
        return cls(raw_text=raw_text or "")

    def summary(self, *keys: str) -> Optional[FieldValue]:
        """Return the first present summary field among the given keys."""
        for key in keys:
            fv = self.summary_fields.get(normalize_field_key(key))
            if fv is not None:
                return fv
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the collaborator's camelCase payload."""
        return {
            "summaryFields": {
                k: {"value": v.value, "confidence": v.confidence}
                for k, v in self.summary_fields.items()
            },
            "lineItems": [
                {k: {"value": v.value, "confidence": v.confidence} for k, v in item.items()}
                for item in self.line_items
            ],
            "rawText": self.raw_text,
        }


@dataclass
class LineItem:
    """One purchased row on a receipt."""
    name: str = UNKNOWN_ITEM
    price: str = ZERO_PRICE
    quantity: int = 1
    line_total: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        self.name = (self.name or "").strip() or UNKNOWN_ITEM
        self.price = normalize_price(self.price)
        self.quantity = coerce_quantity(self.quantity)
        self.line_total = normalize_price(self.line_total) if self.line_total is not None else self.price

    @property
    def is_placeholder(self) -> bool:
        return self.name == NO_ITEMS_PLACEHOLDER

    @classmethod
    def priced(cls, name: str, price: str, quantity: int = 1) -> "LineItem":
        """Build an item whose line total is derived as price * quantity."""
        quantity = coerce_quantity(quantity)
        return cls(name=name, price=price, quantity=quantity,
                   line_total=multiply_price(normalize_price(price), quantity))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "lineTotal": self.line_total,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            name=data.get("name") or data.get("description") or UNKNOWN_ITEM,
            price=data.get("price"),
            quantity=data.get("quantity"),
            line_total=data.get("lineTotal", data.get("line_total")),
            category=data.get("category"),
        )


@dataclass
class ParsedReceipt:
    """Normalized receipt record produced by the parsing pipeline."""
    merchant: str = UNKNOWN_VENDOR
    date: str = ""
    total: str = ZERO_PRICE
    subtotal: Optional[str] = None
    tax: Optional[str] = None
    items: List[LineItem] = field(default_factory=list)
    confidence: float = 0.0
    category: str = DEFAULT_CATEGORY
    field_confidence: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_known_merchant(self) -> bool:
        return bool(self.merchant) and self.merchant.strip().lower() not in UNKNOWN_VENDOR_ALIASES

    @property
    def real_items(self) -> List[LineItem]:
        """Items excluding the "no items detected" placeholder."""
        return [item for item in self.items if not item.is_placeholder]

    @property
    def item_count(self) -> int:
        return len(self.real_items)

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.real_items)

    @property
    def iso_date(self) -> Optional[str]:
        """Receipt date as YYYY-MM-DD (sortable), or None when not canonical."""
        return iso_from_canonical(self.date)

    def validation_errors(self) -> List[str]:
        """List the reasons this receipt is incomplete (empty when fully valid)."""
        errors = []
        if not self.has_known_merchant:
            errors.append("Missing merchant/vendor name")
        if price_to_decimal(self.total) <= 0:
            errors.append("Invalid or missing total amount")
        if not self.date:
            errors.append("Missing receipt date")
        if not self.real_items:
            errors.append("No individual items found")
        return errors

    @property
    def is_valid(self) -> bool:
        # Missing items alone does not invalidate a receipt
        return not [e for e in self.validation_errors() if e != "No individual items found"]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the output JSON shape."""
        return {
            "merchant": self.merchant,
            "date": self.date,
            "total": self.total,
            "subtotal": self.subtotal,
            "tax": self.tax,
            "items": [item.to_dict() for item in self.items],
            "confidence": self.confidence,
            "category": self.category,
            "fieldConfidence": dict(self.field_confidence),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ParsedReceipt":
        """Rebuild a stored receipt; `vendor` is accepted for `merchant`."""
        items = data.get("items") or []
        return cls(
            merchant=data.get("merchant") or data.get("vendor") or UNKNOWN_VENDOR,
            date=data.get("date") or "",
            total=normalize_price(data.get("total")),
            subtotal=data.get("subtotal"),
            tax=data.get("tax"),
            items=[LineItem.from_dict(item) for item in items if isinstance(item, Mapping)],
            confidence=float(data.get("confidence") or 0.0),
            category=data.get("category") or DEFAULT_CATEGORY,
            field_confidence=dict(data.get("fieldConfidence") or {}),
            metadata=dict(data.get("metadata") or {}),
        )
