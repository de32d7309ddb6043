"""
Database operations for receipt storage and model-response caching.
"""

import datetime as dt
import json
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ReceiptExistsError
from .logging import get_logger
from .models import ParsedReceipt
from .utils import price_to_decimal

logger = get_logger(__name__)

# Receipts are kept for seven years
DEFAULT_RETENTION_DAYS = 2555

_RECEIPT_COLUMNS = (
    "receipt_id, timestamp, merchant, category, confidence, is_valid, "
    "validation_errors, payload, ttl"
)


def init_receipts_db(db_path: Path):
    """Initialize the receipts table and its secondary indexes."""
    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS receipts (
            receipt_id TEXT PRIMARY KEY,
            timestamp TEXT NOT NULL,
            merchant TEXT,
            merchant_lower TEXT,
            receipt_date TEXT,
            total_amount REAL,
            category TEXT,
            confidence REAL,
            item_count INTEGER,
            total_items INTEGER,
            month_year TEXT,
            is_valid INTEGER,
            validation_errors TEXT,
            payload TEXT NOT NULL,
            ttl INTEGER
        )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_receipts_category ON receipts(category, timestamp)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_receipts_merchant ON receipts(merchant_lower, timestamp)")
        conn.commit()


def save_receipt(db_path: Path, receipt_id: str, receipt: ParsedReceipt,
                 timestamp: Optional[dt.datetime] = None,
                 retention_days: int = DEFAULT_RETENTION_DAYS) -> Dict:
    """
    Store a parsed receipt; refuses to overwrite an existing id.

    Returns:
        The stored index fields (without the JSON payload)

    Raises:
        ReceiptExistsError: a receipt with this id is already stored
    """
    timestamp = timestamp or dt.datetime.now(dt.timezone.utc)
    iso_date = receipt.iso_date
    errors = receipt.validation_errors()
    record = {
        "receipt_id": receipt_id,
        "timestamp": timestamp.isoformat(),
        "merchant": receipt.merchant,
        "merchant_lower": receipt.merchant.lower(),
        "receipt_date": iso_date or receipt.date,
        "total_amount": float(price_to_decimal(receipt.total)),
        "category": receipt.category,
        "confidence": receipt.confidence,
        "item_count": receipt.item_count,
        "total_items": receipt.total_items,
        "month_year": iso_date[:7] if iso_date else timestamp.strftime("%Y-%m"),
        "is_valid": receipt.is_valid,
        "validation_errors": errors,
        "ttl": int((timestamp + dt.timedelta(days=retention_days)).timestamp()),
    }

    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        try:
            cur.execute("""
            INSERT INTO receipts
            (receipt_id, timestamp, merchant, merchant_lower, receipt_date, total_amount,
             category, confidence, item_count, total_items, month_year, is_valid,
             validation_errors, payload, ttl)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """, (
                receipt_id, record["timestamp"], record["merchant"], record["merchant_lower"],
                record["receipt_date"], record["total_amount"], record["category"],
                record["confidence"], record["item_count"], record["total_items"],
                record["month_year"], int(record["is_valid"]), json.dumps(errors),
                json.dumps(receipt.to_dict()), record["ttl"],
            ))
        except sqlite3.IntegrityError:
            raise ReceiptExistsError(receipt_id) from None
        conn.commit()

    if errors:
        logger.info("Saved receipt %s with validation issues: %s", receipt_id, "; ".join(errors))
    else:
        logger.debug("Saved receipt %s", receipt_id)
    return record


def _row_to_record(row) -> Dict:
    receipt_id, timestamp, merchant, category, confidence, is_valid, errors, payload, ttl = row
    return {
        "receipt_id": receipt_id,
        "timestamp": timestamp,
        "merchant": merchant,
        "category": category,
        "confidence": confidence,
        "is_valid": bool(is_valid),
        "validation_errors": json.loads(errors or "[]"),
        "ttl": ttl,
        "receipt": ParsedReceipt.from_dict(json.loads(payload)),
    }


def receipt_exists(db_path: Path, receipt_id: str) -> bool:
    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute("SELECT 1 FROM receipts WHERE receipt_id = ?", (receipt_id,))
        return cur.fetchone() is not None


def get_receipt(db_path: Path, receipt_id: str) -> Optional[Dict]:
    """Fetch one stored receipt record, or None."""
    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute(f"SELECT {_RECEIPT_COLUMNS} FROM receipts WHERE receipt_id = ?", (receipt_id,))
        row = cur.fetchone()
    return _row_to_record(row) if row else None


def list_receipts(db_path: Path, category: Optional[str] = None,
                  merchant: Optional[str] = None, limit: Optional[int] = None) -> List[Dict]:
    """
    List stored receipts, most recent first.

    Args:
        db_path: Path to receipts database
        category: Only this category (uses the category index)
        merchant: Only this merchant, case-insensitive (uses the merchant index)
        limit: Maximum number of records
    """
    clauses, params = [], []
    if category:
        clauses.append("category = ?")
        params.append(category)
    if merchant:
        clauses.append("merchant_lower = ?")
        params.append(merchant.lower())

    sql = f"SELECT {_RECEIPT_COLUMNS} FROM receipts"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY timestamp DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))

    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute(sql, params)
        return [_row_to_record(row) for row in cur.fetchall()]


def delete_expired(db_path: Path, now: Optional[dt.datetime] = None) -> int:
    """
    Remove receipts whose retention period has passed.

    Returns:
        Number of receipts removed
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute("DELETE FROM receipts WHERE ttl IS NOT NULL AND ttl <= ?", (int(now.timestamp()),))
        conn.commit()
        return cur.rowcount


def init_llm_cache_db(db_path: Path):
    """Initialize SQLite table for the model-response cache."""
    with sqlite3.connect(db_path.as_posix()) as conn:
        cur = conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS llm_cache (
            file_hash TEXT NOT NULL,
            provider TEXT NOT NULL DEFAULT '',
            model TEXT NOT NULL DEFAULT '',
            model_text TEXT,
            cached_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (file_hash, provider, model)
        )
        """)
        conn.commit()


def get_llm_cache(db_path: Path, file_hash: str,
                  provider: Optional[str] = None, model: Optional[str] = None) -> Optional[str]:
    """Retrieve the cached response one provider/model gave for an image hash."""
    try:
        with sqlite3.connect(db_path.as_posix()) as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT model_text FROM llm_cache WHERE file_hash = ? AND provider = ? AND model = ?",
                (file_hash, provider or "", model or ""),
            )
            result = cur.fetchone()
            return result[0] if result else None
    except sqlite3.Error as e:
        logger.warning("Could not read from LLM cache: %s", e)
        return None


def save_llm_cache(db_path: Path, file_hash: str, model_text: str,
                   provider: Optional[str] = None, model: Optional[str] = None):
    """Save a model response to the cache."""
    try:
        with sqlite3.connect(db_path.as_posix()) as conn:
            cur = conn.cursor()
            cur.execute("""
                INSERT OR REPLACE INTO llm_cache (file_hash, provider, model, model_text)
                VALUES (?, ?, ?, ?)
            """, (file_hash, provider or "", model or "", model_text))
            conn.commit()
    except sqlite3.Error as e:
        logger.warning("Could not save to LLM cache: %s", e)
