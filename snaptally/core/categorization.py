"""
Categorization logic for merchants and items based on keywords and rules.
"""

import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .logging import get_logger
from .models import ParsedReceipt
from .utils import DEFAULT_CATEGORY

logger = get_logger(__name__)

KeywordTable = Sequence[Tuple[str, Sequence[str]]]

# Ordered (category, keywords); first matching category wins
MERCHANT_CATEGORIES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Grocery", ("market", "grocery", "groceries", "food", "super", "walmart", "kroger",
                 "safeway", "whole foods", "trader joe", "aldi", "publix", "costco")),
    ("Restaurant", ("restaurant", "cafe", "café", "pizza", "burger", "grill", "diner",
                    "bistro", "kitchen", "coffee", "starbucks", "mcdonald", "taco", "sushi")),
    ("Gas", ("gas", "fuel", "shell", "exxon", "chevron", "mobil", "texaco", "sunoco")),
    ("Pharmacy", ("pharmacy", "drug", "cvs", "walgreens", "rite aid")),
    ("Home Improvement", ("home depot", "lowe", "hardware", "menards", "lumber")),
    ("Electronics", ("best buy", "electronics", "micro center")),
    ("Department Store", ("target", "macy", "kohl", "nordstrom", "jcpenney", "department")),
    ("Retail", ("store", "shop", "retail", "mart", "outlet")),
]

ITEM_CATEGORIES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Beverage", ("drink", "soda", "water", "juice", "coffee", "tea", "beer", "wine", "cola")),
    ("Food", ("food", "bread", "milk", "egg", "cheese", "meat", "chicken", "beef", "pork",
              "fish", "fruit", "banana", "apple", "vegetable", "rice", "pasta", "cereal",
              "yogurt", "butter", "snack", "chips")),
    ("Fuel", ("gas", "fuel", "unleaded", "diesel", "premium")),
    ("Household", ("paper towel", "detergent", "trash bag", "cleaner", "bleach", "tissue",
                   "foil", "sponge")),
    ("Personal Care", ("shampoo", "soap", "toothpaste", "deodorant", "lotion", "razor")),
    ("Pharmacy", ("vitamin", "medicine", "ibuprofen", "allergy", "aspirin")),
    ("Electronics", ("cable", "charger", "battery", "batteries", "headphone", "usb")),
]


def load_rules(path: Path) -> Dict:
    """Load categorization rules from JSON file; a missing file means built-ins only."""
    empty = {"known_chains": [], "matchers": [], "merchant_categories": [], "item_categories": []}
    if not path.exists():
        return empty
    with path.open("r", encoding="utf-8") as f:
        rules = json.load(f)
    return {**empty, **rules}


def _keyword_match(text: str, keyword: str) -> bool:
    # Keywords match at a word start ("super" matches "supercenter")
    return re.search(r"\b" + re.escape(keyword.lower()), text) is not None


def _rule_matches(rule: Dict, text: str, field: str) -> Optional[bool]:
    """True/False for a rule that tests `field`; None when it tests something else."""
    pattern = rule.get(field)
    if not pattern:
        return None
    return re.search(pattern, text, flags=re.IGNORECASE) is not None


def match_rules(text: str, rules: Optional[Dict], field: str = "vendor_re") -> Optional[Tuple[str, Optional[str]]]:
    """
    Run user matchers against a merchant or item name.

    Matchers look like:
        {"name": "Hotels", "vendor_re": "HILTON|MARRIOTT", "category": "Travel"}
        {"name": "Snacks", "any": [{"item_re": "CHIPS"}, {"item_re": "CANDY"}], "category": "Food"}

    Returns:
        (category, matcher_name) for the first matching rule, or None
    """
    for m in (rules or {}).get("matchers", []):
        checks = []
        direct = _rule_matches(m, text, field)
        if direct is not None:
            checks.append(direct)

        any_rules = [r for r in (_rule_matches(r, text, field) for r in m.get("any", [])) if r is not None]
        if any_rules:
            checks.append(any(any_rules))

        all_rules = [r for r in (_rule_matches(r, text, field) for r in m.get("all", [])) if r is not None]
        if all_rules:
            checks.append(all(all_rules))

        if checks and all(checks):
            return (m.get("category") or DEFAULT_CATEGORY, m.get("name"))
    return None


def categorize(name: str, table: KeywordTable, rules: Optional[Dict] = None,
               default: str = DEFAULT_CATEGORY, field: str = "vendor_re") -> str:
    """
    Categorize a merchant or item name.

    Args:
        name: Merchant or item name
        table: Ordered (category, keywords) pairs
        rules: Loaded rules.json; its matchers are tried before the table
        default: Category when nothing matches
        field: Matcher key to test ("vendor_re" or "item_re")

    Returns:
        Category name
    """
    text = (name or "").lower()
    if not text:
        return default

    matched = match_rules(text, rules, field)
    if matched:
        logger.debug("Rule %s matched %r -> %s", matched[1], name, matched[0])
        return matched[0]

    for category, keywords in table:
        if any(_keyword_match(text, kw) for kw in keywords):
            return category
    return default


def _user_table(rules: Optional[Dict], key: str) -> List[Tuple[str, Tuple[str, ...]]]:
    return [(entry["category"], tuple(entry.get("keywords", [])))
            for entry in (rules or {}).get(key, []) if entry.get("category")]


def categorize_merchant(merchant: str, rules: Optional[Dict] = None) -> str:
    """Categorize a receipt by merchant name."""
    table = _user_table(rules, "merchant_categories") + MERCHANT_CATEGORIES
    return categorize(merchant, table, rules=rules, field="vendor_re")


def categorize_item(name: str, rules: Optional[Dict] = None) -> str:
    """Categorize a single line item by its name."""
    table = _user_table(rules, "item_categories") + ITEM_CATEGORIES
    return categorize(name, table, rules=rules, field="item_re")


def apply_categories(receipt: ParsedReceipt, rules: Optional[Dict] = None) -> ParsedReceipt:
    """Set the receipt category and every real item's category in place."""
    receipt.category = categorize_merchant(receipt.merchant, rules) if receipt.has_known_merchant else DEFAULT_CATEGORY
    for item in receipt.real_items:
        item.category = categorize_item(item.name, rules)
    return receipt
