"""Tests for merchant and item categorization."""

import json

from snaptally.core.categorization import (
    MERCHANT_CATEGORIES,
    apply_categories,
    categorize,
    categorize_item,
    categorize_merchant,
    load_rules,
)
from snaptally.core.models import LineItem, ParsedReceipt


def test_walmart_is_grocery() -> None:
    assert categorize("Walmart Supercenter", MERCHANT_CATEGORIES) == "Grocery"
    assert categorize_merchant("Walmart Supercenter") == "Grocery"


def test_unknown_business_is_other() -> None:
    assert categorize_merchant("Totally Unknown Biz") == "Other"


def test_merchant_table_order() -> None:
    assert categorize_merchant("Joe's Pizza") == "Restaurant"
    assert categorize_merchant("Shell") == "Gas"
    assert categorize_merchant("CVS Pharmacy") == "Pharmacy"
    assert categorize_merchant("The Home Depot") == "Home Improvement"
    assert categorize_merchant("Best Buy") == "Electronics"
    assert categorize_merchant("Target") == "Department Store"
    assert categorize_merchant("Gift Shop") == "Retail"


def test_keywords_match_at_word_start() -> None:
    # "gas" must not match inside "Vegas"
    assert categorize_merchant("Vegas Souvenirs") == "Other"


def test_item_categories() -> None:
    assert categorize_item("MILK") == "Food"
    assert categorize_item("Diet Soda") == "Beverage"
    assert categorize_item("UNLEADED") == "Fuel"
    assert categorize_item("Shampoo 12oz") == "Personal Care"
    assert categorize_item("Widget") == "Other"


def test_user_rules_take_precedence(tmp_path) -> None:
    rules_path = tmp_path / "rules.json"
    rules_path.write_text(json.dumps({
        "matchers": [
            {"name": "Work lunches", "vendor_re": "pizza", "category": "Meals"},
            {"name": "Snacks", "any": [{"item_re": "chips"}, {"item_re": "candy"}], "category": "Snacks"},
        ],
        "merchant_categories": [{"category": "Books", "keywords": ["books", "library"]}],
    }))
    rules = load_rules(rules_path)

    assert categorize_merchant("Joe's Pizza", rules) == "Meals"
    assert categorize_merchant("Blue Door Books", rules) == "Books"
    assert categorize_item("CANDY BAR", rules) == "Snacks"
    # vendor matchers do not apply to items
    assert categorize_item("PIZZA SLICE", rules) == "Other"


def test_missing_rules_file_means_builtins(tmp_path) -> None:
    rules = load_rules(tmp_path / "absent.json")
    assert rules["matchers"] == []
    assert categorize_merchant("Kroger", rules) == "Grocery"


def test_apply_categories_sets_receipt_and_items() -> None:
    receipt = ParsedReceipt(
        merchant="ACME MARKET",
        items=[LineItem(name="MILK", price="3.99"), LineItem(name="BREAD", price="2.50")],
    )
    apply_categories(receipt)
    assert receipt.category == "Grocery"
    assert [i.category for i in receipt.items] == ["Food", "Food"]


def test_unknown_vendor_sentinel_is_other() -> None:
    receipt = apply_categories(ParsedReceipt(merchant="Unknown Vendor"))
    assert receipt.category == "Other"
