"""
Scan history: saved diagnoses per user. Entries are only created when the
farmer explicitly saves a result.
"""
import logging
from typing import List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from ..database import SCAN_HISTORY, create_document, to_document, utcnow_iso
from ..models import AnalysisResult, ScanHistoryEntry
from .imaging import decode_data_url

logger = logging.getLogger(__name__)


def save_scan(db: Database, user_id: str, image: str, result: AnalysisResult, farm_id: Optional[str] = None) -> ScanHistoryEntry:
    # raises InputError for anything that is not an embeddable image
    decode_data_url(image)

    doc = {
        "userId": str(user_id),
        "image": image,
        "result": result.model_dump(),
        "farmId": farm_id,
        "createdAt": utcnow_iso(),
    }
    entry_id = create_document(db, SCAN_HISTORY, doc)
    logger.info("Saved scan %s for user %s (%s)", entry_id, user_id, result.diseaseName)
    return ScanHistoryEntry(id=entry_id, **doc)


def list_scans(db: Database, user_id: str, limit: int = 100) -> List[ScanHistoryEntry]:
    cursor = db[SCAN_HISTORY].find({"userId": str(user_id)}).sort("createdAt", DESCENDING).limit(limit)
    return [ScanHistoryEntry(**to_document(d)) for d in cursor]
