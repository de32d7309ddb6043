"""
OCR backends turning receipt images and PDFs into RawExtraction records.
"""

import io
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import ExtractionError
from .logging import get_logger
from .models import FieldValue, RawExtraction
from .utils import IMAGE_EXTS, PDF_EXTS

logger = get_logger(__name__)


def _lazy_import_ocr_deps():
    """Lazy import heavy OCR dependencies."""
    global pytesseract, PIL_Image, fitz
    import importlib
    pytesseract = importlib.import_module("pytesseract")
    PIL_Image = importlib.import_module("PIL.Image")
    fitz = importlib.import_module("fitz")  # pymupdf


# Initialize on first use
pytesseract = None
PIL_Image = None
fitz = None

# Image formats each service accepts as raw bytes, with their media types
TEXTRACT_IMAGE_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}
MODEL_IMAGE_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def _aws_region() -> str:
    """AWS_REGION, then AWS_DEFAULT_REGION, then us-east-1."""
    return os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1"


def _check_supported(path: Path):
    ext = path.suffix.lower()
    if ext not in IMAGE_EXTS and ext not in PDF_EXTS:
        raise ExtractionError(f"Unsupported file type: {path}")


def pdf_first_page_png(pdf_path: Path, zoom: float = 2.0) -> bytes:
    """Rasterize the first PDF page to PNG bytes."""
    if fitz is None:
        _lazy_import_ocr_deps()

    doc = fitz.open(pdf_path.as_posix())
    try:
        if doc.page_count == 0:
            raise ExtractionError(f"PDF has no pages: {pdf_path}")
        pix = doc[0].get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        return pix.tobytes("png")
    finally:
        doc.close()


def image_payload(path: Path, accepted: Dict[str, str] = MODEL_IMAGE_TYPES) -> Tuple[bytes, str]:
    """
    Bytes and media type for sending a receipt to an image-reading service.

    PDFs are rasterized to their first page; image formats missing from
    `accepted` are converted to PNG.
    """
    _check_supported(path)
    ext = path.suffix.lower()
    if ext in PDF_EXTS:
        return pdf_first_page_png(path), "image/png"
    if ext in accepted:
        return path.read_bytes(), accepted[ext]

    if PIL_Image is None:
        _lazy_import_ocr_deps()
    buf = io.BytesIO()
    PIL_Image.open(path).convert("RGB").save(buf, format="PNG")
    return buf.getvalue(), "image/png"


class TesseractExtractor:
    """Local OCR: plain text only, no structured fields."""

    name = "tesseract"

    def ocr_image(self, img) -> str:
        """OCR a PIL image to text."""
        if pytesseract is None:
            _lazy_import_ocr_deps()
        # Grayscale improves Tesseract accuracy on receipt photos
        if img.mode != "L":
            img = img.convert("L")
        return pytesseract.image_to_string(img)

    def pdf_to_text(self, pdf_path: Path) -> str:
        """Extract text from a searchable PDF, OCR-ing the first page when it has none."""
        if fitz is None:
            _lazy_import_ocr_deps()

        doc = fitz.open(pdf_path.as_posix())
        chunks = [page.get_text() for page in doc]
        doc.close()
        text = "\n".join(chunks)
        if text.strip():
            return text

        logger.info("No text layer in %s; running Tesseract on first page", pdf_path.name)
        img = PIL_Image.open(io.BytesIO(pdf_first_page_png(pdf_path)))
        return self.ocr_image(img)

    def extract(self, path: Path) -> RawExtraction:
        _check_supported(path)
        if PIL_Image is None:
            _lazy_import_ocr_deps()

        if path.suffix.lower() in PDF_EXTS:
            text = self.pdf_to_text(path)
        else:
            text = self.ocr_image(PIL_Image.open(path))
        return RawExtraction.from_text(text)


def _expense_fields(fields: List[Dict]) -> Dict[str, FieldValue]:
    """Map Textract ExpenseField entries to {TYPE: FieldValue}."""
    out: Dict[str, FieldValue] = {}
    for f in fields or []:
        field_type = (f.get("Type") or {}).get("Text")
        detection = f.get("ValueDetection") or {}
        value = detection.get("Text")
        if field_type and value:
            out[field_type] = FieldValue(value=value, confidence=float(detection.get("Confidence") or 0.0))
    return out


def parse_expense_response(expense: Dict, detect: Dict) -> RawExtraction:
    """
    Build a RawExtraction from analyze_expense and detect_document_text responses.

    Raises:
        ExtractionError: the expense response holds no documents
    """
    documents = expense.get("ExpenseDocuments") or []
    if not documents:
        raise ExtractionError("No expense documents found in the image")
    doc = documents[0]

    summary = _expense_fields(doc.get("SummaryFields"))
    line_items = []
    for group in doc.get("LineItemGroups") or []:
        for item in group.get("LineItems") or []:
            fields = _expense_fields(item.get("LineItemExpenseFields"))
            if fields:
                line_items.append(fields)

    raw_text = "\n".join(
        b["Text"] for b in detect.get("Blocks", [])
        if b.get("BlockType") == "LINE" and b.get("Text")
    )
    logger.debug("Textract found %d summary fields, %d line items, %d chars of text",
                 len(summary), len(line_items), len(raw_text))
    return RawExtraction(summary_fields=summary, line_items=line_items, raw_text=raw_text)


class TextractExpenseExtractor:
    """AWS Textract AnalyzeExpense plus DetectDocumentText for raw lines."""

    name = "textract"

    def __init__(self, region: Optional[str] = None, client=None):
        self.region = region or _aws_region()
        self._client = client

    @property
    def client(self):
        if self._client is None:
            import boto3
            self._client = boto3.client("textract", region_name=self.region)
        return self._client

    def extract_bytes(self, image_bytes: bytes) -> RawExtraction:
        expense = self.client.analyze_expense(Document={"Bytes": image_bytes})
        detect = self.client.detect_document_text(Document={"Bytes": image_bytes})
        return parse_expense_response(expense, detect)

    def extract(self, path: Path) -> RawExtraction:
        data, _ = image_payload(path, TEXTRACT_IMAGE_TYPES)
        return self.extract_bytes(data)


EXTRACTORS = {
    TesseractExtractor.name: TesseractExtractor,
    TextractExpenseExtractor.name: TextractExpenseExtractor,
}


def get_extractor(name: str = "tesseract"):
    """Create the OCR backend registered under `name`."""
    try:
        return EXTRACTORS[name.lower()]()
    except KeyError:
        raise ExtractionError(f"Unknown OCR backend: {name} (choose from {', '.join(EXTRACTORS)})") from None
