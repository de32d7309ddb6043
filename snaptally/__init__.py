"""
SnapTally

Turns photographed receipts into structured records (merchant, date, totals,
line items) using OCR, heuristics and an LLM, and stores them for retrieval.
"""

__version__ = "1.0.0"
__author__ = "SnapTally Contributors"

from snaptally.core.models import LineItem, ParsedReceipt, RawExtraction

__all__ = ["LineItem", "ParsedReceipt", "RawExtraction"]
