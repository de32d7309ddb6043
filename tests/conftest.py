"""Shared pytest fixtures for snaptally tests."""

import datetime as dt

import pytest

from snaptally.core.models import RawExtraction

ACME_TEXT = "ACME MARKET\n01/15/2024\nMILK 3.99\nBREAD 2.50\nSUBTOTAL 6.49\nTAX 0.52\nTOTAL 7.01"


@pytest.fixture
def today() -> dt.date:
    return dt.date(2024, 3, 1)


@pytest.fixture
def acme_text() -> str:
    return ACME_TEXT


@pytest.fixture
def structured_raw() -> RawExtraction:
    """Expense-extraction payload as the OCR collaborator returns it."""
    return RawExtraction.from_dict({
        "summaryFields": {
            "VENDOR_NAME": {"value": "Fresh Foods Co", "confidence": 98.5},
            "INVOICE_RECEIPT_DATE": {"value": "2024-02-10", "confidence": 95.0},
            "TOTAL": {"value": "$12.34", "confidence": 99.1},
            "TAX": {"value": "0.84", "confidence": 97.0},
        },
        "lineItems": [
            {
                "ITEM": {"value": "APPLES", "confidence": 90.0},
                "PRICE": {"value": "1.50", "confidence": 92.0},
                "QUANTITY": {"value": "3", "confidence": 88.0},
            },
            {
                "ITEM": {"value": "COFFEE", "confidence": 91.0},
                "PRICE": {"value": "$6.99", "confidence": 93.0},
            },
        ],
        "rawText": "Fresh Foods Co\n02/10/2024\nAPPLES 4.50\nCOFFEE 6.99\nTAX 0.84\nTOTAL 12.34",
    })


@pytest.fixture
def fake_generator():
    """Build a model stand-in that records prompts and returns fixed text."""
    def make(response: str):
        calls = []

        def generate(prompt, image=None):
            calls.append({"prompt": prompt, "image": image})
            return response

        generate.calls = calls
        return generate
    return make
