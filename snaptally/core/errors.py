"""
Exceptions raised to the caller when a collaborator cannot deliver input.

Parsing problems (empty extraction, malformed model output, unparseable
prices) are recovered inside the pipeline and never raise.
"""


class SnapTallyError(Exception):
    """Base class for pipeline errors."""


class ExtractionError(SnapTallyError):
    """The OCR service produced no usable document."""


class LLMError(SnapTallyError):
    """The generative-text service could not be called or returned nothing."""


class ReceiptExistsError(SnapTallyError):
    """A receipt with this id is already stored."""

    def __init__(self, receipt_id: str):
        super().__init__(f"Receipt {receipt_id} already exists")
        self.receipt_id = receipt_id
