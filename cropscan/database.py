"""
Document store connection (MongoDB via pymongo).

Collections used by the scan flow:
- `diseases`: seedable reference set for the manual fallback
- `products`: product catalog, matched on `targetPests`
- `scan_history`: append-only saved scans per user
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DISEASES = "diseases"
PRODUCTS = "products"
SCAN_HISTORY = "scan_history"

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def init_db() -> bool:
    """Connect to DATABASE_URL. Called on startup; returns False when unconfigured."""
    global _client, _db

    database_url = os.getenv("DATABASE_URL")
    database_name = os.getenv("DATABASE_NAME", "cropscan")
    if not database_url:
        logger.warning("DATABASE_URL not set. Fallback, product and history features disabled.")
        return False

    try:
        _client = MongoClient(database_url, serverSelectionTimeoutMS=5000)
        _client.admin.command("ping")
        _db = _client[database_name]
        logger.info("Database connected: %s", database_name)
        return True
    except PyMongoError as e:
        logger.error("Database connection failed: %s", e)
        _client = None
        _db = None
        return False


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def get_db() -> Optional[Database]:
    """FastAPI dependency returning the active database, or None."""
    return _db


def is_db_available() -> bool:
    return _db is not None


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Copy a raw document, exposing `_id` as a string `id`."""
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def create_document(db: Database, collection_name: str, data: Dict[str, Any]) -> str:
    doc = dict(data)
    doc.setdefault("createdAt", utcnow_iso())
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return [to_document(d) for d in cursor]
