"""
Reference disease collection used when automated analysis fails.

The collection is seeded once with a baseline of five common crop diseases.
Document ids are derived from the disease name, so seeding is idempotent and
safe to run from several sessions at the same time.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ..database import DISEASES, get_documents, to_document
from ..errors import ReferenceLookupError
from ..models import AnalysisResult, DiseaseReference

logger = logging.getLogger(__name__)

FALLBACK_LIMIT = 5
MANUAL_CROP_TYPE = "Manual Selection"

BASELINE_DISEASES: List[Dict[str, Any]] = [
    {
        "name": "Early Blight",
        "symptoms": ["Dark concentric rings on leaves", "Yellowing of lower leaves", "Stem lesions"],
        "treatment": "Apply fungicides containing copper or chlorothalonil. Improve air circulation.",
        "prevention": ["Crop rotation", "Mulching", "Drip irrigation to keep foliage dry"],
        "severity": "Moderate",
        "commonCrops": ["Tomato", "Potato"],
    },
    {
        "name": "Late Blight",
        "symptoms": ["Water-soaked spots on leaves", "White fungal growth on undersides", "Rapid browning of tissue"],
        "treatment": "Apply systemic fungicides immediately. Remove infected plants.",
        "prevention": ["Use resistant varieties", "Avoid overhead irrigation", "Proper spacing"],
        "severity": "Severe",
        "commonCrops": ["Tomato", "Potato"],
    },
    {
        "name": "Powdery Mildew",
        "symptoms": ["White powdery spots on leaves/stems", "Distorted leaf growth", "Premature leaf drop"],
        "treatment": "Neem oil or sulfur-based fungicides. Milk-water solution spray.",
        "prevention": ["Resistant varieties", "Full sun exposure", "Good air circulation"],
        "severity": "Mild",
        "commonCrops": ["Cucumber", "Squash", "Melon"],
    },
    {
        "name": "Leaf Rust",
        "symptoms": ["Orange/brown pustules on leaf undersides", "Yellowing on upper leaf surface", "Stunted growth"],
        "treatment": "Fungicides with propiconazole. Remove infected debris.",
        "prevention": ["Resistant cultivars", "Remove volunteer plants", "Balanced fertilization"],
        "severity": "Moderate",
        "commonCrops": ["Maize", "Wheat", "Beans"],
    },
    {
        "name": "Bacterial Wilt",
        "symptoms": ["Sudden wilting during day", "Recovery at night initially", "Brown discoloration in stem"],
        "treatment": "Remove and destroy infected plants immediately. No chemical cure.",
        "prevention": ["Crop rotation (non-solanaceous)", "Control nematodes", "Clean tools"],
        "severity": "Severe",
        "commonCrops": ["Tomato", "Pepper", "Eggplant"],
    },
]


def disease_id(name: str) -> str:
    """Deterministic document id, e.g. "Early Blight" -> "early-blight"."""
    return re.sub(r"\s+", "-", name.strip().lower())


def seed_diseases(db: Database, force: bool = False) -> int:
    """Upsert the baseline diseases when the collection is empty.

    Returns the number of documents written (0 when nothing was needed).
    """
    collection = db[DISEASES]
    if not force and collection.find_one({}) is not None:
        return 0

    logger.info("Seeding disease reference collection...")
    for disease in BASELINE_DISEASES:
        did = disease_id(disease["name"])
        collection.replace_one({"_id": did}, dict(disease), upsert=True)
    logger.info("Disease reference collection seeded with %d entries", len(BASELINE_DISEASES))
    return len(BASELINE_DISEASES)


def _to_reference(doc: Dict[str, Any]) -> Optional[DiseaseReference]:
    try:
        return DiseaseReference(**to_document(doc))
    except ValidationError as e:
        logger.warning("Skipping malformed disease document %s: %s", doc.get("_id") or doc.get("id"), e)
        return None


def _read_diseases(db: Database, limit: Optional[int] = None) -> List[DiseaseReference]:
    try:
        docs = get_documents(db, DISEASES, {}, limit)
    except PyMongoError as e:
        raise ReferenceLookupError("Failed to read disease reference collection", details=str(e))
    return [ref for ref in (_to_reference(d) for d in docs) if ref is not None]


def get_fallback_candidates(db: Optional[Database], limit: int = FALLBACK_LIMIT) -> List[DiseaseReference]:
    """Up to `limit` candidate diseases for manual selection.

    Seeds the collection first when it is empty. Any store failure is logged
    and degrades to an empty list.
    """
    if db is None:
        logger.warning("Fallback candidates requested but no database is configured")
        return []
    try:
        candidates = _read_diseases(db, limit)
        if not candidates:
            seed_diseases(db)
            candidates = _read_diseases(db, limit)
        return candidates
    except (ReferenceLookupError, PyMongoError) as e:
        logger.error("Error fetching fallback diseases: %s", e)
        return []


def get_all_diseases(db: Optional[Database]) -> List[DiseaseReference]:
    if db is None:
        return []
    try:
        return _read_diseases(db)
    except ReferenceLookupError as e:
        logger.error("Error getting all diseases: %s", e)
        return []


def get_disease(db: Optional[Database], did: str) -> Optional[DiseaseReference]:
    if db is None:
        return None
    try:
        doc = db[DISEASES].find_one({"_id": did})
    except PyMongoError as e:
        logger.error("Error fetching disease %s: %s", did, e)
        return None
    return _to_reference(doc) if doc else None


def to_manual_result(disease: DiseaseReference) -> AnalysisResult:
    """Map a user-picked reference entry to the regular result shape.

    Confidence 0 marks the result as a manual choice rather than a model output.
    """
    return AnalysisResult(
        diseaseName=disease.name,
        confidence=0,
        cropType=MANUAL_CROP_TYPE,
        severity=disease.severity,
        symptoms=list(disease.symptoms),
        treatment=disease.treatment,
        prevention=list(disease.prevention),
    )
