from unittest.mock import MagicMock

from pymongo.errors import AutoReconnect

from cropscan.services.products import fetch_products_for_disease


def product(idx, pests):
    return {
        "_id": f"product_{idx}",
        "productName": f"Product {idx}",
        "category": "Fungicide",
        "activeIngredient": "Mancozeb",
        "targetPests": pests,
        "crops": ["Tomato"],
        "priceRange": {"min": 450, "max": 600, "currency": "KES"},
        "organic": False,
    }


def test_matches_target_pest_exactly(mongo_db):
    mongo_db["products"].insert_many([
        product(1, ["Early Blight", "Late Blight"]),
        product(2, ["Leaf Rust"]),
        product(3, ["Late Blight"]),
    ])

    found = fetch_products_for_disease(mongo_db, "Late Blight")
    assert sorted(p.id for p in found) == ["product_1", "product_3"]
    assert found[0].priceRange.currency == "KES"


def test_match_is_case_sensitive(mongo_db):
    mongo_db["products"].insert_one(product(1, ["Early Blight"]))
    assert fetch_products_for_disease(mongo_db, "early blight") == []


def test_capped_at_ten(mongo_db):
    mongo_db["products"].insert_many([product(i, ["Aphids"]) for i in range(15)])
    assert len(fetch_products_for_disease(mongo_db, "Aphids")) == 10


def test_no_match_is_empty_not_error(mongo_db):
    assert fetch_products_for_disease(mongo_db, "Unknown Disease") == []


def test_lookup_failure_is_empty():
    db = MagicMock()
    db.__getitem__.return_value.find.side_effect = AutoReconnect("connection reset")
    assert fetch_products_for_disease(db, "Late Blight") == []


def test_malformed_products_are_skipped(mongo_db):
    mongo_db["products"].insert_many([
        product(1, ["Rust"]),
        {"_id": "broken", "targetPests": ["Rust"]},
    ])
    found = fetch_products_for_disease(mongo_db, "Rust")
    assert [p.id for p in found] == ["product_1"]


def test_without_database():
    assert fetch_products_for_disease(None, "Rust") == []
