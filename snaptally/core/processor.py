"""
Main receipt processing orchestration.
"""

import datetime as dt
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .categorization import apply_categories, load_rules
from .database import (get_llm_cache, init_llm_cache_db, init_receipts_db,
                       receipt_exists, save_llm_cache, save_receipt)
from .interpreter import extract_json_object, interpret
from .llm import generate as llm_generate
from .llm import resolve_model
from .logging import get_logger
from .models import ParsedReceipt, RawExtraction
from .ocr import get_extractor, image_payload
from .parsers import build_known_chains
from .prompts import build_prompt
from .reconcile import fallback_receipt
from .utils import IMAGE_EXTS, PDF_EXTS, money_fmt, sha1_file, slugify

logger = get_logger(__name__)

# generate(prompt, image=None) -> model text
Generator = Callable[..., str]

# Subdirectory of processed/ for files whose receipt is already stored
DUPLICATES_DIR = "_duplicates"


def process_extraction(raw: RawExtraction,
                       generate: Optional[Generator] = None,
                       rules: Optional[Dict] = None,
                       today: Optional[dt.date] = None,
                       image: Optional[bytes] = None) -> ParsedReceipt:
    """
    Run one receipt's OCR output through the parsing pipeline.

    Args:
        raw: OCR output for the receipt
        generate: Model call taking (prompt, image=...) and returning text;
            None skips the model and uses structured + heuristic parsing only
        rules: Loaded rules.json (categories and known chains)
        today: Clock used for date defaults and confidence
        image: Receipt image for multimodal models

    Returns:
        Categorized ParsedReceipt. Errors raised by `generate` propagate.
    """
    known_chains = build_known_chains((rules or {}).get("known_chains"))
    if generate is None:
        receipt = fallback_receipt(raw, today=today, known_chains=known_chains)
    else:
        model_text = generate(build_prompt(raw), image=image)
        receipt = interpret(model_text, raw, today=today, known_chains=known_chains)
    return apply_categories(receipt, rules)


class ReceiptProcessor:
    """Batch processor: OCR, parse, categorize and store every receipt in a folder."""

    def __init__(self, incoming_dir: Path, db_path: Path, rules_path: Path,
                 ocr_backend: str = "tesseract",
                 llm_provider: str = "openai",
                 llm_model: Optional[str] = None,
                 use_llm: bool = True,
                 send_image: bool = True,
                 verbose: bool = False,
                 processed_dir: Optional[Path] = None,
                 extractor=None,
                 generate: Optional[Generator] = None,
                 today: Optional[dt.date] = None):
        """
        Initialize receipt processor.

        Args:
            incoming_dir: Directory with new receipts
            db_path: SQLite file for receipts and the model-response cache
            rules_path: Path to rules.json
            ocr_backend: "tesseract" or "textract"
            llm_provider: LLM provider to use ("openai", "anthropic", "azure-openai")
            llm_model: LLM model name (uses provider default if not specified)
            use_llm: Whether to call the model at all
            send_image: Whether to attach the receipt image to the model call
            verbose: Whether to show per-field details
            processed_dir: Where files go after processing (default: processed/ next to incoming)
            extractor: OCR backend object (overrides ocr_backend)
            generate: Model call (overrides llm_provider/llm_model)
            today: Clock for date defaults
        """
        self.incoming_dir = incoming_dir
        self.db_path = db_path
        self.processed_dir = processed_dir or incoming_dir.parent / "processed"
        self.verbose = verbose
        self.llm_provider = llm_provider
        self.use_llm = use_llm
        self.send_image = send_image
        self.llm_model = resolve_model(llm_provider, llm_model) if use_llm else llm_model
        self.today = today

        for dir_path in [self.incoming_dir, self.processed_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

        self.rules = load_rules(rules_path)
        self.extractor = extractor or get_extractor(ocr_backend)
        self._generate = generate

        init_receipts_db(self.db_path)
        init_llm_cache_db(self.db_path)

    def discover_files(self) -> List[Path]:
        """Receipt images and PDFs waiting in the incoming directory."""
        files = sorted(
            p for p in self.incoming_dir.iterdir()
            if p.is_file() and p.suffix.lower() in IMAGE_EXTS.union(PDF_EXTS)
        )
        print(f"[INFO] Found {len(files)} file(s) in incoming")
        return files

    def _cached_generator(self, file_hash: str, media_type: str = "image/jpeg") -> Generator:
        """
        Model call that reuses this provider/model's cached response for the file.

        Responses without a JSON object are not cached, so a later run retries.
        """
        def generate(prompt: str, image: Optional[bytes] = None) -> str:
            cached = get_llm_cache(self.db_path, file_hash, self.llm_provider, self.llm_model)
            if cached:
                logger.debug("Using cached model response for %s", file_hash[:8])
                return cached
            if self._generate is not None:
                text = self._generate(prompt, image=image)
            else:
                text = llm_generate(prompt, provider=self.llm_provider, model=self.llm_model,
                                    image=image, media_type=media_type)
            try:
                extract_json_object(text)
            except ValueError as e:
                logger.warning("Not caching model response for %s: %s", file_hash[:8], e)
            else:
                save_llm_cache(self.db_path, file_hash, text, provider=self.llm_provider, model=self.llm_model)
            return text
        return generate

    def process_file(self, path: Path, file_hash: Optional[str] = None) -> Dict:
        """
        Process a single receipt file.

        Returns:
            Stored record fields plus the receipt and its new location
        """
        print(f"[INFO] Processing {path.name}")
        sha1 = file_hash or sha1_file(path)

        raw = self.extractor.extract(path)
        generate, image = None, None
        if self.use_llm:
            media_type = "image/jpeg"
            if self.send_image:
                image, media_type = image_payload(path)
            generate = self._cached_generator(sha1, media_type)
        receipt = process_extraction(raw, generate=generate, rules=self.rules, today=self.today, image=image)

        if self.verbose:
            print(f"  [DEBUG] Merchant: '{receipt.merchant}' -> {receipt.category}")
            print(f"  [DEBUG] Date: {receipt.date}  Total: {money_fmt(receipt.total)}")
            print(f"  [DEBUG] Items: {receipt.item_count}  Confidence: {receipt.confidence:.2f}"
                  f"  ({receipt.metadata.get('processed_by')})")
            if not receipt.has_known_merchant:
                print(f"  [DEBUG] First 5 lines of OCR text:")
                for i, line in enumerate(raw.raw_text.splitlines()[:5], 1):
                    print(f"    {i}: {line[:80]}")

        record = save_receipt(self.db_path, sha1, receipt)
        for error in record["validation_errors"]:
            print(f"  [WARN] {error}")

        record["receipt"] = receipt
        record["path"] = self._move_to_processed(path, slugify(receipt.category), sha1)
        return record

    def _move_to_processed(self, path: Path, subdir: str, sha1: str) -> Path:
        """Move processed file into a subdirectory of processed/."""
        cat_dir = self.processed_dir / subdir
        cat_dir.mkdir(parents=True, exist_ok=True)
        dest = cat_dir / path.name
        if dest.exists():
            # Avoid overwrite by suffixing sha1
            dest = cat_dir / f"{path.stem}_{sha1[:8]}{path.suffix}"
        shutil.move(path.as_posix(), dest.as_posix())
        return dest

    def process_all(self) -> List[Dict]:
        """
        Process every receipt in the incoming directory.

        Files already stored (same SHA-1) are moved to processed/_duplicates/
        without reprocessing; a failure on one file is reported, the file stays
        in incoming, and the batch carries on.
        """
        files = self.discover_files()
        if not files:
            print("No receipt files found in incoming directory.")
            return []

        records = []
        for file_path in files:
            try:
                file_hash = sha1_file(file_path)
                if receipt_exists(self.db_path, file_hash):
                    dest = self._move_to_processed(file_path, DUPLICATES_DIR, file_hash)
                    print(f"[INFO] Skipping {file_path.name} (already stored as {file_hash[:8]}), moved to {dest}")
                    continue
                records.append(self.process_file(file_path, file_hash))
            except Exception as e:
                print(f"[ERROR] Failed {file_path.name}: {e}")
                logger.debug("Failure details for %s", file_path.name, exc_info=True)

        print(f"[OK] Stored {len(records)} receipt(s) in {self.db_path}")
        return records
