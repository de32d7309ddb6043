"""Tests for the parsing prompt."""

from snaptally.core.models import RawExtraction
from snaptally.core.prompts import MAX_PROMPT_TEXT_CHARS, build_prompt


def test_prompt_is_deterministic(structured_raw) -> None:
    assert build_prompt(structured_raw) == build_prompt(structured_raw)


def test_prompt_embeds_fields_items_and_text(structured_raw) -> None:
    prompt = build_prompt(structured_raw)

    assert "- VENDOR_NAME: Fresh Foods Co (confidence: 98.5%)" in prompt
    assert "- TOTAL: $12.34 (confidence: 99.1%)" in prompt
    assert "Item 1:\n  - ITEM: APPLES (confidence: 90.0%)" in prompt
    assert "Item 2:" in prompt
    assert "RAW TEXT FROM RECEIPT:\nFresh Foods Co\n02/10/2024" in prompt


def test_prompt_spells_out_output_contract(structured_raw) -> None:
    prompt = build_prompt(structured_raw)

    for key in ('"merchant"', '"date"', '"total"', '"subtotal"', '"tax"', '"items"', '"lineTotal"'):
        assert key in prompt
    assert "Return ONLY valid JSON" in prompt
    assert "X.XX format without currency symbols" in prompt
    assert "MM/DD/YYYY" in prompt


def test_prompt_without_structured_data() -> None:
    prompt = build_prompt(RawExtraction.from_text("ACME MARKET"))
    assert "Summary Fields:" not in prompt
    assert "Line Items:" not in prompt
    assert "(none)" in prompt


def test_prompt_truncates_long_text() -> None:
    raw = RawExtraction.from_text("A" * (MAX_PROMPT_TEXT_CHARS + 500))
    assert "A" * MAX_PROMPT_TEXT_CHARS in build_prompt(raw)
    assert "A" * (MAX_PROMPT_TEXT_CHARS + 1) not in build_prompt(raw)
