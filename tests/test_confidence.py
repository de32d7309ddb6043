"""Tests for the aggregate confidence score."""

from snaptally.core.confidence import score
from snaptally.core.models import FieldValue, LineItem, ParsedReceipt, RawExtraction

FULL = ParsedReceipt(
    merchant="ACME MARKET",
    date="01/15/2024",
    total="7.01",
    items=[LineItem(name="MILK", price="3.99")],
)


def _without(**changes) -> ParsedReceipt:
    data = FULL.to_dict()
    data.update(changes)
    return ParsedReceipt.from_dict(data)


def test_all_signals_score_one(today) -> None:
    raw = RawExtraction(summary_fields={"TOTAL": FieldValue("7.01", 99.0)})
    assert score(FULL, raw, today=today) == 1.0


def test_each_signal_is_one_fifth(today) -> None:
    raw = RawExtraction.from_text("")
    assert score(FULL, raw, today=today) == 0.8
    assert score(_without(merchant="Unknown Vendor"), raw, today=today) == 0.6
    assert score(_without(date="03/01/2024"), raw, today=today) == 0.6
    assert score(_without(total="0.00"), raw, today=today) == 0.6
    assert score(_without(items=[]), raw, today=today) == 0.6


def test_placeholder_item_does_not_count(today) -> None:
    receipt = _without(items=[{"name": "No items detected"}])
    assert score(receipt, None, today=today) == 0.6


def test_score_is_monotonic_in_signals(today) -> None:
    raw = RawExtraction.from_text("")
    empty = ParsedReceipt(date="03/01/2024")
    partial = ParsedReceipt(merchant="ACME MARKET", date="03/01/2024")
    assert score(empty, raw, today=today) <= score(partial, raw, today=today) <= score(FULL, raw, today=today)
