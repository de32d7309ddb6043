"""
Prompt text sent to the generative model for receipt parsing.
"""

from .models import FieldValue, RawExtraction

# Keep prompts within model context limits for very long OCR dumps
MAX_PROMPT_TEXT_CHARS = 8000

PROMPT_HEADER = """You are an expert at parsing receipt data. I will provide you with raw text from a receipt and some structured data extracted by an OCR service. Please extract the following information and return it in JSON format only (no other text):

{
  "merchant": "store name",
  "date": "MM/DD/YYYY format",
  "total": "X.XX",
  "subtotal": "X.XX or null",
  "tax": "X.XX or null",
  "items": [
    {
      "name": "item name",
      "quantity": 1,
      "price": "X.XX",
      "lineTotal": "X.XX"
    }
  ]
}

STRUCTURED OCR DATA:
"""

PROMPT_INSTRUCTIONS = """INSTRUCTIONS:
1. Use the structured OCR data when available and confident
2. Fall back to raw text parsing for missing or low-confidence data
3. For merchant name, look for the business name (usually at the top)
4. For date, convert to MM/DD/YYYY format
5. For items, extract the product name, quantity (default 1 if not specified), individual price, and line total
6. Ensure all prices are in X.XX format without currency symbols
7. If you cannot find a field, use null for optional fields or "Unknown" for required fields
8. Return ONLY valid JSON, no explanations or additional text

JSON Response:"""


def _field_line(key: str, fv: FieldValue, indent: str = "") -> str:
    return f"{indent}- {key}: {fv.value} (confidence: {fv.confidence:.1f}%)\n"


def build_prompt(raw: RawExtraction) -> str:
    """
    Render the parsing prompt for one receipt.

    Output depends only on `raw`: fields keep their extraction order and the
    raw text is truncated at MAX_PROMPT_TEXT_CHARS.
    """
    prompt = PROMPT_HEADER

    if raw.summary_fields:
        prompt += "\nSummary Fields:\n"
        for key, fv in raw.summary_fields.items():
            prompt += _field_line(key, fv)

    if raw.line_items:
        prompt += "\nLine Items:\n"
        for index, item in enumerate(raw.line_items, start=1):
            prompt += f"Item {index}:\n"
            for key, fv in item.items():
                prompt += _field_line(key, fv, indent="  ")

    if not raw.summary_fields and not raw.line_items:
        prompt += "\n(none)\n"

    text = raw.raw_text[:MAX_PROMPT_TEXT_CHARS]
    prompt += f"\nRAW TEXT FROM RECEIPT:\n{text}\n\n{PROMPT_INSTRUCTIONS}"
    return prompt
