"""
Parsers for extracting information from receipt text.

Everything here works on line-oriented OCR text only; structured fields from
the expense-extraction service are handled in reconcile.py.
"""

import datetime as dt
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Set, Tuple

from .confidence import score
from .logging import get_logger
from .models import LineItem, ParsedReceipt, RawExtraction
from .utils import (
    NO_ITEMS_PLACEHOLDER,
    PRICE_PATTERN,
    TIME_PATTERN,
    UNKNOWN_VENDOR,
    ZERO_PRICE,
    divide_price,
    find_date,
    normalize_price,
    today_str,
)

logger = get_logger(__name__)

# Known chains: a match anywhere in the first lines wins outright.
KNOWN_CHAINS: List[Tuple[Pattern, str]] = [
    (re.compile(r"\bwal[\s-]?mart\b", re.IGNORECASE), "Walmart"),
    (re.compile(r"\bcostco\b", re.IGNORECASE), "Costco"),
    (re.compile(r"\btarget\b", re.IGNORECASE), "Target"),
    (re.compile(r"\bkroger\b", re.IGNORECASE), "Kroger"),
    (re.compile(r"\bsafeway\b", re.IGNORECASE), "Safeway"),
    (re.compile(r"\bwhole\s+foods\b", re.IGNORECASE), "Whole Foods Market"),
    (re.compile(r"\btrader\s+joe'?s\b", re.IGNORECASE), "Trader Joe's"),
    (re.compile(r"\baldi\b", re.IGNORECASE), "Aldi"),
    (re.compile(r"\bpublix\b", re.IGNORECASE), "Publix"),
    (re.compile(r"\bwalgreens\b", re.IGNORECASE), "Walgreens"),
    (re.compile(r"\bcvs\b", re.IGNORECASE), "CVS Pharmacy"),
    (re.compile(r"\brite\s+aid\b", re.IGNORECASE), "Rite Aid"),
    (re.compile(r"\bhome\s+depot\b", re.IGNORECASE), "The Home Depot"),
    (re.compile(r"\blowe'?s\b", re.IGNORECASE), "Lowe's"),
    (re.compile(r"\bbest\s+buy\b", re.IGNORECASE), "Best Buy"),
    (re.compile(r"\bmacy'?s\b", re.IGNORECASE), "Macy's"),
    (re.compile(r"\bstarbucks\b", re.IGNORECASE), "Starbucks"),
    (re.compile(r"\bmc\s?donald'?s\b", re.IGNORECASE), "McDonald's"),
    (re.compile(r"\bchevron\b", re.IGNORECASE), "Chevron"),
    (re.compile(r"\bexxon\b", re.IGNORECASE), "Exxon"),
    (re.compile(r"\bshell\b", re.IGNORECASE), "Shell"),
]

VENDOR_SCAN_LINES = 10
VENDOR_HIGH_CONFIDENCE = 4.0
CHAIN_CONFIDENCE = 0.95
DATE_CONFIDENCE = 0.9
AMOUNT_CONFIDENCE = 0.85

# A label word followed by ":", "#", a number or nothing, e.g. "ORDER #12", "MEMBER: 5551"
_LABEL_END = r"\s*(?:[:#\d]|no\b|number\b|id\b|name\b|copy\b|$)"

# Lines that are never the vendor name (customer-related text, receipt metadata)
VENDOR_SKIP_PATTERNS = [
    re.compile(r"^(?:customer|cardholder|card\s*holder|member|account|name)" + _LABEL_END, re.IGNORECASE),
    re.compile(r"^(?:order|ticket|bill)" + _LABEL_END, re.IGNORECASE),
    re.compile(r"^(thank\s*you|thanks|welcome)\b", re.IGNORECASE),
    re.compile(r"^(date|time|server|cashier|clerk|register|sold\s*to|ship\s*to|tel|phone)\b", re.IGNORECASE),
    re.compile(r"receipt|invoice", re.IGNORECASE),
    re.compile(r"^(visa|mastercard|amex|discover|debit|credit)\b", re.IGNORECASE),
    re.compile(r"^www\.|\.com\b|@"),
    re.compile(r"^[\W_]+$"),            # dividers
    re.compile(r"^[0-9\s\-\./#:]+$"),   # only numbers and punctuation
]


@dataclass(frozen=True)
class AmountRule:
    """A label pattern whose amount follows it on the same line."""
    label: str
    pattern: Pattern
    excludes: Tuple[str, ...] = ()

    def matches_label(self, line: str) -> bool:
        if not self.pattern.search(line):
            return False
        lower = line.lower()
        return not any(phrase in lower for phrase in self.excludes)

    def amount(self, line: str) -> Optional[str]:
        """Return the normalized amount after the label, or None."""
        m = self.pattern.search(line)
        if not m or not self.matches_label(line):
            return None
        pm = PRICE_PATTERN.search(line, m.end())
        if not pm:
            return None
        return normalize_price(pm.group(1))


_TOTAL_EXCLUDES = (
    "subtotal", "sub total", "sub-total", "total savings", "total saved",
    "total discount", "total items", "total number", "items sold",
    "total tax", "before tax", "pre-tax",
)
_TAX_EXCLUDES = (
    "subtotal", "sub total", "sub-total", "after tax", "before tax",
    "pre-tax", "taxable", "tax exempt", "incl",
)

TOTAL_RULES = [
    AmountRule("grand total", re.compile(r"\bgrand\s*total\b", re.IGNORECASE), _TOTAL_EXCLUDES),
    AmountRule("amount due", re.compile(r"\b(?:amount|balance|total)\s+due\b", re.IGNORECASE), _TOTAL_EXCLUDES),
    AmountRule("total", re.compile(r"\btotal\b", re.IGNORECASE), _TOTAL_EXCLUDES),
    AmountRule("amount paid", re.compile(r"\bamount\s+paid\b", re.IGNORECASE), _TOTAL_EXCLUDES),
]
SUBTOTAL_RULES = [
    AmountRule("subtotal", re.compile(r"\bsub\s*-?\s*total\b", re.IGNORECASE)),
]
TAX_RULES = [
    AmountRule("sales tax", re.compile(r"\bsales\s+tax\b", re.IGNORECASE), _TAX_EXCLUDES),
    AmountRule("tax", re.compile(r"\btax\b", re.IGNORECASE), _TAX_EXCLUDES),
    AmountRule("hst", re.compile(r"\bhst\b", re.IGNORECASE), _TAX_EXCLUDES),
    AmountRule("gst", re.compile(r"\bgst\b", re.IGNORECASE), _TAX_EXCLUDES),
    AmountRule("pst", re.compile(r"\bpst\b", re.IGNORECASE), _TAX_EXCLUDES),
    AmountRule("vat", re.compile(r"\bvat\b", re.IGNORECASE), _TAX_EXCLUDES),
]

# Summary and payment terms: a line containing one is never a line item
NON_ITEM_KEYWORDS = re.compile(
    r"\b(?:sub\s*-?\s*total|total|tax|hst|gst|pst|vat|tender(?:ed)?|"
    r"visa|master\s*card|amex|debit|balance|amount\s+due|payment|thank|receipt|"
    r"invoice|cashier|tel|phone|fax|www|approved|approval|auth(?:orization)?|"
    r"gratuity|savings|you\s+saved|items?\s+sold|store\s*#)\b",
    re.IGNORECASE,
)
# Words that also name products ("GREETING CARD", "TABLE SALT") only count
# when they open the line as a label: "CASH 20.00", "CHANGE DUE 0.23", "TIP: 2.00"
NON_ITEM_LABELS = re.compile(
    r"^(?:cash|change|credit|card|tip|table|guest|server|member|rewards?|points|"
    r"discover|ref(?:erence)?|trans(?:action)?)"
    r"(?:\s+(?:due|back|card|tendered|amount|balance|earned|points|no\.?|number|id))*"
    r"\s*(?:[:#$\d*]|$)",
    re.IGNORECASE,
)
DIVIDER_PATTERN = re.compile(r"^[\W_]{2,}$")
HEADER_MIN_LENGTH = 20
MAX_ITEM_NAME_LENGTH = 40

# Leading quantity markers: "2 x MILK", "QTY 2 MILK", "2 @ MILK", "*2 MILK", "(2) MILK"
QUANTITY_MARKERS = [
    re.compile(r"^(\d{1,3})\s*[xX]\s+"),
    re.compile(r"^qty\s*[:#]?\s*(\d{1,3})\b\s*", re.IGNORECASE),
    re.compile(r"^(\d{1,3})\s*@\s*"),
    re.compile(r"^\*\s*(\d{1,3})\s+"),
    re.compile(r"^\((\d{1,3})\)\s*"),
]


def split_lines(text: str) -> List[str]:
    """Trimmed, non-empty lines in receipt order."""
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]


def build_known_chains(entries: Iterable[Dict]) -> List[Tuple[Pattern, str]]:
    """Compile rules.json `known_chains` entries ahead of the built-in table."""
    chains = []
    for entry in entries or []:
        pattern = entry.get("pattern")
        name = entry.get("name")
        if pattern and name:
            chains.append((re.compile(pattern, re.IGNORECASE), name))
    return chains + KNOWN_CHAINS


def _is_proper_case(line: str) -> bool:
    words = [w for w in line.split() if w[:1].isalpha()]
    return bool(words) and all(w[0].isupper() for w in words) and any(c.islower() for c in line)


def _is_vendor_candidate(line: str) -> bool:
    if len(line) < 2 or sum(c.isalpha() for c in line) < 2:
        return False
    if find_date(line) or TIME_PATTERN.search(line) or PRICE_PATTERN.search(line):
        return False
    return not any(p.search(line) for p in VENDOR_SKIP_PATTERNS)


def _score_vendor_line(line: str, idx: int) -> float:
    score_value = 1.0
    if idx < 3:
        score_value += 2.0
    if _is_proper_case(line):
        score_value += 1.5
    if line.isupper() and len(line) > 10:
        score_value -= 1.0
    if any(c.isdigit() for c in line):
        score_value -= 2.0
    return score_value


def _detect_vendor(lines: List[str],
                   known_chains: Optional[Sequence[Tuple[Pattern, str]]] = None
                   ) -> Tuple[Optional[str], float, Optional[int]]:
    """Return (vendor, confidence, line index) for the first lines of a receipt."""
    head = lines[:VENDOR_SCAN_LINES]
    chains = KNOWN_CHAINS if known_chains is None else known_chains

    for idx, ln in enumerate(head):
        for pattern, name in chains:
            if pattern.search(ln):
                return name, CHAIN_CONFIDENCE, idx

    best: Optional[Tuple[float, str, int]] = None
    for idx, ln in enumerate(head):
        if not _is_vendor_candidate(ln):
            continue
        line_score = _score_vendor_line(ln, idx)
        if best is None or line_score > best[0]:
            best = (line_score, ln, idx)
        if line_score >= VENDOR_HIGH_CONFIDENCE:
            break

    if best is None:
        return None, 0.0, None
    line_score, vendor, idx = best
    return vendor, round(min(0.9, max(0.1, 0.4 + 0.1 * line_score)), 2), idx


def _detect_date(lines: List[str]) -> Tuple[Optional[str], Optional[int]]:
    for idx, ln in enumerate(lines):
        found = find_date(ln)
        if found:
            return found, idx
    return None, None


def _detect_amount(lines: List[str], rules: Sequence[AmountRule]) -> Tuple[Optional[str], Optional[int]]:
    """First matching line wins; rule order encodes label priority."""
    for rule in rules:
        for idx, ln in enumerate(lines):
            amount = rule.amount(ln)
            if amount is not None:
                return amount, idx
    return None, None


def _is_summary_line(line: str) -> bool:
    return any(rule.matches_label(line) for rule in TOTAL_RULES + SUBTOTAL_RULES + TAX_RULES)


def _is_non_item_line(line: str) -> bool:
    """Summary, payment and label lines; the only keyword check the relaxed pass applies."""
    return bool(NON_ITEM_KEYWORDS.search(line) or NON_ITEM_LABELS.match(line)) or _is_summary_line(line)


def _is_excluded(line: str) -> bool:
    """Structural and keyword checks shared by both item passes."""
    if len(line) < 2:
        return True
    if DIVIDER_PATTERN.match(line):
        return True
    compact = re.sub(r"\s", "", line)
    if compact.isdigit() and len(compact) >= 6:
        return True
    if line.isupper() and len(line) > HEADER_MIN_LENGTH and not any(c.isdigit() for c in line):
        return True
    if _is_non_item_line(line):
        return True
    return find_date(line) is not None


def _strip_quantity(text: str) -> Tuple[int, str]:
    """Split a leading quantity marker off an item line."""
    text = text.strip()
    for marker in QUANTITY_MARKERS:
        m = marker.match(text)
        if m:
            qty = int(m.group(1))
            return (qty if qty >= 1 else 1), text[m.end():]
    return 1, text


def _clean_item_name(text: str) -> str:
    """Clean up an item description from OCR artifacts."""
    text = re.sub(r"^\d{6,}\s*", "", text.strip())  # leading SKU
    text = re.sub(r"\s\d{6,}\b", " ", text)
    text = re.sub(r"[^A-Za-z0-9&'%/\s-]", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip(" -/'")


def _is_valid_item_name(name: str, max_length: Optional[int] = MAX_ITEM_NAME_LENGTH) -> bool:
    if not name or not any(c.isalpha() for c in name):
        return False
    if name.replace(" ", "").isdigit():
        return False
    return max_length is None or len(name) < max_length


def _is_price_like(line: str) -> bool:
    """A line that is essentially just a price, e.g. "3.99 F" or "$3.99"."""
    if not PRICE_PATTERN.search(line):
        return False
    return sum(c.isalpha() for c in line) <= 2 and not NON_ITEM_KEYWORDS.search(line)


def _build_item(name: str, quantity: int, amounts: List[str]) -> LineItem:
    """The last amount on the line is the line total; a second one is the unit price."""
    line_total = amounts[-1]
    if quantity > 1 and len(amounts) >= 2:
        price = amounts[0]
    elif quantity > 1:
        price = divide_price(line_total, quantity)
    else:
        price = line_total
    return LineItem(name=name, price=price, quantity=quantity, line_total=line_total)


def _item_from_line(line: str) -> Optional[LineItem]:
    matches = list(PRICE_PATTERN.finditer(line))
    if not matches:
        return None
    quantity, head = _strip_quantity(line[:matches[0].start()])
    name = _clean_item_name(head)
    if not _is_valid_item_name(name):
        # Price before the name, e.g. "3 @ 1.25 ROLLS 3.75" or "3.99 MILK"
        quantity, rest = _strip_quantity(PRICE_PATTERN.sub(" ", line))
        name = _clean_item_name(rest)
        if not _is_valid_item_name(name):
            return None
    return _build_item(name, quantity, [normalize_price(m.group(1)) for m in matches])


def _extract_items(lines: List[str], skip: Set[int]) -> List[LineItem]:
    """Primary pass: priced item lines plus name/price split across two lines."""
    items: List[LineItem] = []
    i = 0
    while i < len(lines):
        ln = lines[i]
        if i in skip or _is_excluded(ln):
            i += 1
            continue

        item = _item_from_line(ln)
        if item is not None:
            items.append(item)
            i += 1
            continue

        nxt = i + 1
        if (not PRICE_PATTERN.search(ln) and nxt < len(lines) and nxt not in skip
                and _is_price_like(lines[nxt])):
            quantity, head = _strip_quantity(ln)
            name = _clean_item_name(head)
            if _is_valid_item_name(name):
                amount = normalize_price(PRICE_PATTERN.search(lines[nxt]).group(1))
                items.append(_build_item(name, quantity, [amount]))
                i += 2
                continue
        i += 1
    return items


def _extract_items_relaxed(lines: List[str], skip: Set[int]) -> List[LineItem]:
    """Global fallback: any line with a letter, a digit and a price."""
    items: List[LineItem] = []
    for idx, ln in enumerate(lines):
        if idx in skip or _is_non_item_line(ln):
            continue
        if not (any(c.isalpha() for c in ln) and any(c.isdigit() for c in ln)):
            continue
        matches = list(PRICE_PATTERN.finditer(ln))
        if not matches:
            continue
        quantity, rest = _strip_quantity(PRICE_PATTERN.sub(" ", ln))
        name = _clean_item_name(rest)
        if not _is_valid_item_name(name, max_length=None):
            continue
        items.append(_build_item(name, quantity, [normalize_price(m.group(1)) for m in matches]))
    return items


def parse_vendor(text: str, known_chains: Optional[Sequence[Tuple[Pattern, str]]] = None) -> Optional[str]:
    """Extract vendor name from receipt text, or None."""
    return _detect_vendor(split_lines(text), known_chains)[0]


def parse_date(text: str) -> Optional[str]:
    """Extract the first date in the receipt as MM/DD/YYYY."""
    return _detect_date(split_lines(text))[0]


def parse_total(text: str) -> Optional[str]:
    """Extract the receipt total."""
    return _detect_amount(split_lines(text), TOTAL_RULES)[0]


def parse_subtotal(text: str) -> Optional[str]:
    """Extract the subtotal."""
    return _detect_amount(split_lines(text), SUBTOTAL_RULES)[0]


def parse_tax(text: str) -> Optional[str]:
    """Extract the tax amount (sales tax, HST, GST, PST, VAT)."""
    return _detect_amount(split_lines(text), TAX_RULES)[0]


def parse_items(text: str) -> List[LineItem]:
    """Extract line items with both passes (no vendor/date/summary lines)."""
    return parse_heuristic(text).items


def parse_heuristic(raw_text: str,
                    today: Optional[dt.date] = None,
                    known_chains: Optional[Sequence[Tuple[Pattern, str]]] = None,
                    placeholder_when_empty: bool = False) -> ParsedReceipt:
    """
    Parse raw OCR text into a receipt without any structured input.

    Args:
        raw_text: Line-oriented OCR text
        today: Clock used for the missing-date default
        known_chains: (pattern, name) table overriding KNOWN_CHAINS
        placeholder_when_empty: Emit a single "No items detected" item
            instead of an empty list

    Returns:
        ParsedReceipt with sentinel defaults for anything not found
    """
    lines = split_lines(raw_text)

    vendor, vendor_conf, vendor_idx = _detect_vendor(lines, known_chains)
    date, date_idx = _detect_date(lines)
    total, total_idx = _detect_amount(lines, TOTAL_RULES)
    subtotal, subtotal_idx = _detect_amount(lines, SUBTOTAL_RULES)
    tax, tax_idx = _detect_amount(lines, TAX_RULES)

    skip = {idx for idx in (vendor_idx, date_idx, total_idx, subtotal_idx, tax_idx) if idx is not None}
    items = _extract_items(lines, skip)
    if not items:
        items = _extract_items_relaxed(lines, skip)
        if items:
            logger.debug("Relaxed item pass found %d item(s)", len(items))

    field_confidence = {
        "merchant": vendor_conf,
        "date": DATE_CONFIDENCE if date else 0.0,
        "total": AMOUNT_CONFIDENCE if total else 0.0,
        "subtotal": AMOUNT_CONFIDENCE if subtotal else 0.0,
        "tax": AMOUNT_CONFIDENCE if tax else 0.0,
        "items": round(min(0.9, 0.3 + 0.1 * len(items)), 2) if items else 0.0,
    }

    if not vendor:
        logger.debug("No vendor found; defaulting to %s", UNKNOWN_VENDOR)
    if not date:
        logger.debug("No date found; defaulting to today")
    if not total:
        logger.debug("No total found; defaulting to %s", ZERO_PRICE)
    if not items and placeholder_when_empty:
        items = [LineItem(name=NO_ITEMS_PLACEHOLDER)]

    receipt = ParsedReceipt(
        merchant=vendor or UNKNOWN_VENDOR,
        date=date or today_str(today),
        total=total or ZERO_PRICE,
        subtotal=subtotal,
        tax=tax,
        items=items,
        field_confidence=field_confidence,
        metadata={"processed_by": "heuristic"},
    )
    receipt.confidence = score(receipt, RawExtraction.from_text(raw_text), today=today)
    return receipt
