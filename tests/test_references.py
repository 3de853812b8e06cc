import pytest
from bson import ObjectId

from database import create_document
from errors import DuplicatePriority, InvalidType, NotFound, ReferentNotFound
from references import (
    BrandTarget,
    CategoryTarget,
    create_priority,
    delete_priority,
    get_priority_by_object,
    list_priorities,
    parse_target,
    refresh_dashed_names,
    resolve_slug,
    update_priority,
)


@pytest.fixture
def brand(mongo):
    return create_document(mongo, "brand", {"name": "Acme", "dashed_name": "acme"})


@pytest.fixture
def category(mongo):
    return create_document(mongo, "category", {"name": "Pumps", "dashed_name": "pumps"})


def test_parse_target_returns_variant_per_type():
    oid = ObjectId()
    assert parse_target("Brand", str(oid)) == BrandTarget(oid)
    assert parse_target("Category", oid) == CategoryTarget(oid)
    with pytest.raises(InvalidType):
        parse_target("Product", str(oid))


def test_create_priority_embeds_referent(mongo, brand):
    priority = create_priority(mongo, "Top brand", "Brand", str(brand["_id"]), 5)

    assert priority["type"] == "Brand"
    assert priority["object_id"] == str(brand["_id"])
    assert priority["ref"]["name"] == "Acme"
    assert priority["ref"]["id"] == str(brand["_id"])


def test_create_priority_rejects_bad_input(mongo, brand):
    with pytest.raises(InvalidType):
        create_priority(mongo, "x", "Widget", str(brand["_id"]))
    with pytest.raises(ReferentNotFound):
        create_priority(mongo, "x", "Category", str(brand["_id"]))


def test_one_priority_per_target(mongo, brand):
    create_priority(mongo, "first", "Brand", str(brand["_id"]), 1)
    with pytest.raises(DuplicatePriority):
        create_priority(mongo, "second", "Brand", str(brand["_id"]), 2)
    assert mongo["priority"].count_documents({}) == 1


def test_same_object_id_under_another_type_is_allowed(mongo):
    shared = ObjectId()
    mongo["brand"].insert_one({"_id": shared, "name": "Delta"})
    mongo["category"].insert_one({"_id": shared, "name": "Delta"})

    create_priority(mongo, "as brand", "Brand", str(shared))
    created = create_priority(mongo, "as category", "Category", str(shared))

    assert created["ref"]["name"] == "Delta"
    assert mongo["priority"].count_documents({"object_id": shared}) == 2


def test_update_rechecks_new_target(mongo, brand, category):
    other = create_document(mongo, "category", {"name": "Valves", "dashed_name": "valves"})
    on_brand = create_priority(mongo, "brand", "Brand", str(brand["_id"]))
    create_priority(mongo, "pumps", "Category", str(category["_id"]))

    with pytest.raises(DuplicatePriority):
        update_priority(mongo, on_brand["id"], {"type": "Category", "object_id": str(category["_id"])})
    with pytest.raises(ReferentNotFound):
        update_priority(mongo, on_brand["id"], {"type": "Category"})

    moved = update_priority(mongo, on_brand["id"], {"type": "Category", "object_id": str(other["_id"]), "priority": 9})
    assert moved["ref"]["name"] == "Valves"
    assert moved["priority"] == 9


def test_update_keeping_own_target_is_not_a_duplicate(mongo, brand):
    priority = create_priority(mongo, "brand", "Brand", str(brand["_id"]))
    updated = update_priority(mongo, priority["id"], {"name": "renamed", "object_id": str(brand["_id"])})
    assert updated["name"] == "renamed"


def test_listing_orders_by_rank_and_filters_by_type(mongo, brand, category):
    create_priority(mongo, "low", "Brand", str(brand["_id"]), 1)
    create_priority(mongo, "high", "Category", str(category["_id"]), 10)

    assert [p["name"] for p in list_priorities(mongo)] == ["high", "low"]
    assert [p["name"] for p in list_priorities(mongo, "Brand")] == ["low"]
    with pytest.raises(InvalidType):
        list_priorities(mongo, "brand")


def test_lookup_and_delete_by_object(mongo, brand):
    priority = create_priority(mongo, "brand", "Brand", str(brand["_id"]))
    assert get_priority_by_object(mongo, "Brand", str(brand["_id"]))["id"] == priority["id"]

    delete_priority(mongo, priority["id"])
    with pytest.raises(NotFound):
        get_priority_by_object(mongo, "Brand", str(brand["_id"]))


def test_slug_precedence_prefers_brand(mongo, brand, category):
    create_document(mongo, "product", {"name": "X", "dashed_name": "x", "sku": "X-1", "brand": brand["_id"]})
    create_document(mongo, "brand", {"name": "X", "dashed_name": "x"})

    item = resolve_slug(mongo, "x")

    assert item["type"] == "Brand"
    assert item["name"] == "X"


def test_slug_resolution_populates_product_refs(mongo, brand, category):
    sub = create_document(mongo, "subcategory", {"name": "Centrifugal", "dashed_name": "centrifugal", "category": category["_id"]})
    create_document(mongo, "product", {
        "name": "Hydro 100",
        "dashed_name": "hydro-100",
        "sku": "HYD-100",
        "brand": brand["_id"],
        "category": category["_id"],
        "sub_category": sub["_id"],
    })

    item = resolve_slug(mongo, "hydro-100", populate=True)
    assert item["type"] == "Product"
    assert item["brand"]["name"] == "Acme"
    assert item["sub_category"]["dashed_name"] == "centrifugal"

    assert resolve_slug(mongo, "centrifugal", populate=True)["category"]["name"] == "Pumps"
    assert resolve_slug(mongo, "missing") is None


def test_refresh_dashed_names(mongo):
    create_document(mongo, "brand", {"name": "Acme Tools & Co."})
    create_document(mongo, "product", {"name": "Hydro 100", "dashed_name": "Hydro-100", "sku": "HYD-100"})

    results = refresh_dashed_names(mongo)

    assert results["brand"]["updated"] == 1
    assert results["product"]["updated"] == 1
    assert mongo["brand"].find_one()["dashed_name"] == "acme-tools-co"
    assert mongo["product"].find_one()["dashed_name"] == "hydro-100"
