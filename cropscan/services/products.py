"""
Product recommendations for a diagnosed disease.
"""
import logging
from typing import List, Optional

from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ..database import PRODUCTS, get_documents
from ..models import Product

logger = logging.getLogger(__name__)

PRODUCT_LIMIT = 10


def fetch_products_for_disease(db: Optional[Database], disease_name: str, limit: int = PRODUCT_LIMIT) -> List[Product]:
    """Products whose `targetPests` array contains `disease_name`.

    Matching is exact and case-sensitive, so "Early blight" will not find
    products listed under "Early Blight". No match, or a failed lookup,
    returns an empty list and never blocks showing the diagnosis.
    """
    if db is None or not disease_name:
        return []
    try:
        docs = get_documents(db, PRODUCTS, {"targetPests": disease_name}, limit)
    except PyMongoError as e:
        logger.error("Error fetching products for %r: %s", disease_name, e)
        return []

    products: List[Product] = []
    for doc in docs:
        try:
            products.append(Product(**doc))
        except ValidationError as e:
            logger.warning("Skipping malformed product %s: %s", doc.get("id"), e)
    if not products:
        logger.info("No products found for disease %r", disease_name)
    return products
