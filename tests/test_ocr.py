"""Tests for OCR backends that need no OCR binaries or network."""

from pathlib import Path

import pytest

from snaptally.core.errors import ExtractionError
from snaptally.core.ocr import (
    TEXTRACT_IMAGE_TYPES,
    TesseractExtractor,
    TextractExpenseExtractor,
    get_extractor,
    image_payload,
    parse_expense_response,
)


def _field(kind, value, confidence=95.0):
    return {"Type": {"Text": kind}, "ValueDetection": {"Text": value, "Confidence": confidence}}


EXPENSE = {
    "ExpenseDocuments": [{
        "SummaryFields": [
            _field("VENDOR_NAME", "ACME MARKET", 99.2),
            _field("TOTAL", "$7.01"),
            {"Type": {"Text": "TAX"}, "ValueDetection": {}},
        ],
        "LineItemGroups": [{
            "LineItems": [
                {"LineItemExpenseFields": [_field("ITEM", "MILK"), _field("PRICE", "3.99")]},
                {"LineItemExpenseFields": []},
            ],
        }],
    }],
}
DETECT = {
    "Blocks": [
        {"BlockType": "PAGE"},
        {"BlockType": "LINE", "Text": "ACME MARKET"},
        {"BlockType": "WORD", "Text": "ACME"},
        {"BlockType": "LINE", "Text": "MILK 3.99"},
    ],
}


class FakeTextract:
    def __init__(self, expense, detect):
        self.expense = expense
        self.detect = detect
        self.calls = []

    def analyze_expense(self, Document):
        self.calls.append("analyze_expense")
        return self.expense

    def detect_document_text(self, Document):
        self.calls.append("detect_document_text")
        return self.detect


def test_parse_expense_response() -> None:
    raw = parse_expense_response(EXPENSE, DETECT)

    assert raw.summary("VENDOR_NAME").value == "ACME MARKET"
    assert raw.summary("VENDOR_NAME").confidence == 99.2
    assert raw.summary("TAX") is None
    assert len(raw.line_items) == 1
    assert raw.line_items[0]["PRICE"].value == "3.99"
    assert raw.raw_text == "ACME MARKET\nMILK 3.99"


def test_no_expense_documents_is_an_error() -> None:
    with pytest.raises(ExtractionError):
        parse_expense_response({"ExpenseDocuments": []}, DETECT)


def test_textract_extractor_uses_both_calls() -> None:
    client = FakeTextract(EXPENSE, DETECT)
    raw = TextractExpenseExtractor(region="us-east-1", client=client).extract_bytes(b"img")
    assert client.calls == ["analyze_expense", "detect_document_text"]
    assert raw.summary("TOTAL").value == "$7.01"


def test_textract_reads_image_files(tmp_path) -> None:
    path = tmp_path / "r.jpg"
    path.write_bytes(b"jpegbytes")
    client = FakeTextract(EXPENSE, DETECT)
    raw = TextractExpenseExtractor(client=client).extract(path)
    assert raw.raw_text.startswith("ACME MARKET")


def test_image_payload_keeps_accepted_formats(tmp_path) -> None:
    jpg = tmp_path / "r.jpg"
    jpg.write_bytes(b"jpegbytes")
    assert image_payload(jpg) == (b"jpegbytes", "image/jpeg")

    tif = tmp_path / "r.tiff"
    tif.write_bytes(b"tiffbytes")
    assert image_payload(tif, TEXTRACT_IMAGE_TYPES) == (b"tiffbytes", "image/tiff")


def test_region_defaults(monkeypatch) -> None:
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
    assert TextractExpenseExtractor().region == "us-east-1"
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    assert TextractExpenseExtractor().region == "eu-west-1"


def test_unsupported_file_type() -> None:
    with pytest.raises(ExtractionError):
        TesseractExtractor().extract(Path("notes.docx"))


def test_get_extractor() -> None:
    assert isinstance(get_extractor("tesseract"), TesseractExtractor)
    assert isinstance(get_extractor("Textract"), TextractExpenseExtractor)
    with pytest.raises(ExtractionError):
        get_extractor("abbyy")
