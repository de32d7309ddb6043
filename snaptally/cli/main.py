#!/usr/bin/env python3
"""
Main CLI entrypoint for SnapTally.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from snaptally.core.categorization import apply_categories, load_rules
from snaptally.core.database import get_receipt, init_receipts_db, list_receipts
from snaptally.core.logging import set_log_level
from snaptally.core.llm import LLMProvider
from snaptally.core.parsers import build_known_chains, parse_heuristic
from snaptally.core.processor import ReceiptProcessor
from snaptally.core.utils import money_fmt

LLM_PROVIDERS = [p.value for p in LLMProvider]
OCR_BACKENDS = ["tesseract", "textract"]


def _add_common_args(parser: argparse.ArgumentParser):
    parser.add_argument("--db", default="./receipts.db",
                        help="SQLite database for receipts (default: ./receipts.db)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show detailed parsing information for debugging")


def cmd_process(args) -> int:
    # Resolve configuration from CLI args or environment variables
    llm_provider = args.llm_provider or os.getenv("LLM_PROVIDER", "openai")
    if llm_provider not in LLM_PROVIDERS:
        print(f"[ERROR] Invalid LLM provider: {llm_provider}")
        print(f"[ERROR] Must be one of: {', '.join(LLM_PROVIDERS)}")
        return 1
    llm_model = args.llm_model or os.getenv("LLM_MODEL")

    ocr_backend = args.ocr or os.getenv("OCR_BACKEND", "tesseract")
    if ocr_backend not in OCR_BACKENDS:
        print(f"[ERROR] Invalid OCR backend: {ocr_backend}")
        print(f"[ERROR] Must be one of: {', '.join(OCR_BACKENDS)}")
        return 1

    print(f"[INFO] OCR: {ocr_backend}")
    if args.no_llm:
        print("[INFO] LLM disabled, using structured fields and heuristic parsing only")
    else:
        env_source = " [from LLM_PROVIDER env]" if not args.llm_provider and os.getenv("LLM_PROVIDER") else ""
        print(f"[INFO] LLM: {llm_provider} ({llm_model or 'default'}){env_source}")

    processor = ReceiptProcessor(
        incoming_dir=Path(args.incoming),
        db_path=Path(args.db),
        rules_path=Path(args.rules),
        ocr_backend=ocr_backend,
        llm_provider=llm_provider,
        llm_model=llm_model,
        use_llm=not args.no_llm,
        send_image=not args.no_image,
        verbose=args.verbose,
        processed_dir=Path(args.processed) if args.processed else None,
    )
    processor.process_all()
    return 0


def cmd_parse_text(args) -> int:
    path = Path(args.file)
    if not path.exists():
        print(f"[ERROR] File not found: {path}")
        return 1

    rules = load_rules(Path(args.rules))
    text = path.read_text(encoding="utf-8", errors="replace")
    receipt = parse_heuristic(text, known_chains=build_known_chains(rules.get("known_chains")))
    apply_categories(receipt, rules)
    print(json.dumps(receipt.to_dict(), indent=2))
    return 0


def cmd_show(args) -> int:
    init_receipts_db(Path(args.db))
    record = get_receipt(Path(args.db), args.receipt_id)
    if record is None:
        print(f"[ERROR] No receipt with id {args.receipt_id}")
        return 1
    out = record["receipt"].to_dict()
    out["receiptId"] = record["receipt_id"]
    out["timestamp"] = record["timestamp"]
    out["validationErrors"] = record["validation_errors"]
    print(json.dumps(out, indent=2))
    return 0


def cmd_list(args) -> int:
    init_receipts_db(Path(args.db))
    records = list_receipts(Path(args.db), category=args.category,
                            merchant=args.merchant, limit=args.limit)
    if not records:
        print("No receipts found.")
        return 0
    for r in records:
        receipt = r["receipt"]
        flag = "" if r["is_valid"] else "  [incomplete]"
        print(f"{r['receipt_id'][:12]}  {receipt.date:<10}  {receipt.merchant[:30]:<30}  "
              f"{money_fmt(receipt.total):>10}  {receipt.category}{flag}")
    return 0


def main(argv=None):
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="snaptally",
        description="Turn receipt photos into structured, categorized records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # OCR and parse every receipt in ./incoming
  snaptally process

  # Use Textract and Anthropic
  snaptally process --ocr textract --llm-provider anthropic

  # Parse OCR text you already have (no model call)
  snaptally parse-text receipt.txt

  # Browse stored receipts
  snaptally list --category Grocery --limit 20
        """
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("process", help="Process all receipts in the incoming folder")
    _add_common_args(p)
    p.add_argument("--incoming", default="./incoming",
                   help="Folder with new receipts (default: ./incoming)")
    p.add_argument("--processed",
                   help="Folder for processed receipts (default: processed/ next to incoming)")
    p.add_argument("--rules", default="./rules.json",
                   help="rules.json for categories and known chains (default: ./rules.json)")
    p.add_argument("--ocr", choices=OCR_BACKENDS,
                   help="OCR backend (default: tesseract, or OCR_BACKEND env var)")
    p.add_argument("--llm-provider", choices=LLM_PROVIDERS,
                   help="LLM provider to use (default: openai, or LLM_PROVIDER env var)")
    p.add_argument("--llm-model",
                   help="LLM model to use (uses provider default if not specified, or LLM_MODEL env var)")
    p.add_argument("--no-llm", action="store_true",
                   help="Disable the model, use only structured fields and heuristic parsing")
    p.add_argument("--no-image", action="store_true",
                   help="Send only the OCR text to the model, not the receipt image")
    p.set_defaults(func=cmd_process)

    p = sub.add_parser("parse-text", help="Heuristically parse a text file of OCR output")
    p.add_argument("file", help="Text file with OCR output")
    p.add_argument("--rules", default="./rules.json",
                   help="rules.json for categories and known chains (default: ./rules.json)")
    p.add_argument("--verbose", "-v", action="store_true",
                   help="Show detailed parsing information for debugging")
    p.set_defaults(func=cmd_parse_text)

    p = sub.add_parser("show", help="Show one stored receipt as JSON")
    _add_common_args(p)
    p.add_argument("receipt_id", help="Receipt id (file SHA-1)")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("list", help="List stored receipts, most recent first")
    _add_common_args(p)
    p.add_argument("--category", help="Only this category")
    p.add_argument("--merchant", help="Only this merchant (case-insensitive)")
    p.add_argument("--limit", type=int, help="Maximum number of receipts")
    p.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)
    if args.verbose:
        set_log_level(logging.DEBUG)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
