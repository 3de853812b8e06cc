"""
Cross-collection references: priority targets and slug lookups.

A priority entry ranks exactly one brand, category or subcategory. Its
``type`` field is parsed once into one of the ``*Target`` variants below and
every lookup dispatches on the variant, so an unknown type never gets past
``parse_target``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import serialize, to_object_id, utcnow
from errors import DuplicatePriority, InvalidType, NotFound, ReferentNotFound
from slugs import dashed_name

logger = logging.getLogger(__name__)

PRIORITY_COLLECTION = "priority"
PRIORITY_ORDER = [("priority", DESCENDING), ("created_at", DESCENDING)]


@dataclass(frozen=True)
class BrandTarget:
    object_id: ObjectId
    type = "Brand"


@dataclass(frozen=True)
class CategoryTarget:
    object_id: ObjectId
    type = "Category"


@dataclass(frozen=True)
class SubcategoryTarget:
    object_id: ObjectId
    type = "Subcategory"


PriorityTarget = Union[BrandTarget, CategoryTarget, SubcategoryTarget]

PRIORITY_TYPES = ("Brand", "Category", "Subcategory")


def parse_target(type_name: Optional[str], object_id: Any) -> PriorityTarget:
    if type_name == "Brand":
        return BrandTarget(to_object_id(object_id))
    if type_name == "Category":
        return CategoryTarget(to_object_id(object_id))
    if type_name == "Subcategory":
        return SubcategoryTarget(to_object_id(object_id))
    raise InvalidType()


def _resolve_brand(database: Database, target: BrandTarget) -> Optional[Dict[str, Any]]:
    return database["brand"].find_one({"_id": target.object_id})


def _resolve_category(database: Database, target: CategoryTarget) -> Optional[Dict[str, Any]]:
    return database["category"].find_one({"_id": target.object_id})


def _resolve_subcategory(database: Database, target: SubcategoryTarget) -> Optional[Dict[str, Any]]:
    return database["subcategory"].find_one({"_id": target.object_id})


def resolve_target(database: Database, target: PriorityTarget) -> Optional[Dict[str, Any]]:
    if isinstance(target, BrandTarget):
        return _resolve_brand(database, target)
    if isinstance(target, CategoryTarget):
        return _resolve_category(database, target)
    if isinstance(target, SubcategoryTarget):
        return _resolve_subcategory(database, target)
    raise InvalidType()


def populate_priority(database: Database, doc: Dict[str, Any]) -> Dict[str, Any]:
    target = parse_target(doc["type"], doc["object_id"])
    out = serialize(doc)
    ref = resolve_target(database, target)
    out["ref"] = serialize(ref) if ref else None
    return out


def _check_target(database: Database, target: PriorityTarget, exclude: Optional[ObjectId] = None) -> None:
    if resolve_target(database, target) is None:
        raise ReferentNotFound(f"{target.type} not found with the provided ID")
    query: Dict[str, Any] = {"type": target.type, "object_id": target.object_id}
    if exclude is not None:
        query["_id"] = {"$ne": exclude}
    if database[PRIORITY_COLLECTION].find_one(query, {"_id": 1}):
        raise DuplicatePriority(f"Priority already exists for this {target.type.lower()}")


def create_priority(database: Database, name: str, type: str, object_id: str, priority: int = 0) -> Dict[str, Any]:
    target = parse_target(type, object_id)
    _check_target(database, target)

    now = utcnow()
    doc = {
        "name": name,
        "type": target.type,
        "object_id": target.object_id,
        "priority": priority,
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = database[PRIORITY_COLLECTION].insert_one(doc)
    except DuplicateKeyError:
        # lost a race against another create for the same target
        raise DuplicatePriority(f"Priority already exists for this {target.type.lower()}")
    doc["_id"] = result.inserted_id
    return populate_priority(database, doc)


def _load_priority(database: Database, priority_id: str) -> Dict[str, Any]:
    doc = database[PRIORITY_COLLECTION].find_one({"_id": to_object_id(priority_id, "priority")})
    if doc is None:
        raise NotFound("Priority not found")
    return doc


def update_priority(database: Database, priority_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    existing = _load_priority(database, priority_id)
    update = {k: v for k, v in changes.items() if k in ("name", "priority")}

    if "type" in changes or "object_id" in changes:
        target = parse_target(
            changes.get("type", existing["type"]),
            changes.get("object_id", existing["object_id"]),
        )
        _check_target(database, target, exclude=existing["_id"])
        update["type"] = target.type
        update["object_id"] = target.object_id

    update["updated_at"] = utcnow()
    try:
        database[PRIORITY_COLLECTION].update_one({"_id": existing["_id"]}, {"$set": update})
    except DuplicateKeyError:
        raise DuplicatePriority(f"Priority already exists for this {update.get('type', existing['type']).lower()}")
    return populate_priority(database, {**existing, **update})


def get_priority(database: Database, priority_id: str) -> Dict[str, Any]:
    return populate_priority(database, _load_priority(database, priority_id))


def list_priorities(database: Database, type: Optional[str] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if type is not None:
        if type not in PRIORITY_TYPES:
            raise InvalidType()
        query["type"] = type
    docs = database[PRIORITY_COLLECTION].find(query).sort(PRIORITY_ORDER)
    return [populate_priority(database, d) for d in docs]


def get_priority_by_object(database: Database, type: str, object_id: str) -> Dict[str, Any]:
    target = parse_target(type, object_id)
    doc = database[PRIORITY_COLLECTION].find_one({"type": target.type, "object_id": target.object_id})
    if doc is None:
        raise NotFound("Priority not found for this object")
    return populate_priority(database, doc)


def delete_priority(database: Database, priority_id: str) -> Dict[str, Any]:
    doc = _load_priority(database, priority_id)
    database[PRIORITY_COLLECTION].delete_one({"_id": doc["_id"]})
    return serialize(doc)


# Slug lookups

# Precedence when the same slug exists in more than one collection.
SLUG_KINDS: List[Tuple[str, str]] = [
    ("Brand", "brand"),
    ("Category", "category"),
    ("SubCategory", "subcategory"),
    ("Product", "product"),
]

SUMMARY_FIELDS = {"_id": 1, "name": 1, "dashed_name": 1}


def _summary(database: Database, collection: str, oid: Any) -> Optional[Dict[str, Any]]:
    if oid is None:
        return None
    doc = database[collection].find_one({"_id": oid}, SUMMARY_FIELDS)
    return serialize(doc) if doc else None


def resolve_slug(database: Database, slug: str, populate: bool = False) -> Optional[Dict[str, Any]]:
    """
    Find whatever carries ``slug`` as its dashed name.

    The four collections are queried concurrently and the first hit in
    ``SLUG_KINDS`` order wins, so a brand shadows a product with the same
    slug. The result is tagged with its ``type``.
    """
    projection = None if populate else SUMMARY_FIELDS
    with ThreadPoolExecutor(max_workers=len(SLUG_KINDS)) as pool:
        futures = [
            pool.submit(database[collection].find_one, {"dashed_name": slug}, projection)
            for _, collection in SLUG_KINDS
        ]
        hits = [f.result() for f in futures]

    for (kind, _), doc in zip(SLUG_KINDS, hits):
        if doc is None:
            continue
        out = serialize(doc)
        if populate and kind == "SubCategory":
            out["category"] = _summary(database, "category", doc.get("category"))
        elif populate and kind == "Product":
            out["brand"] = _summary(database, "brand", doc.get("brand"))
            out["category"] = _summary(database, "category", doc.get("category"))
            out["sub_category"] = _summary(database, "subcategory", doc.get("sub_category"))
        out["type"] = kind
        return out
    return None


def refresh_dashed_names(database: Database) -> Dict[str, Dict[str, Any]]:
    """Re-derive ``dashed_name`` for every sluggable record; failures are collected, not raised."""
    results: Dict[str, Dict[str, Any]] = {}
    for kind, collection in SLUG_KINDS:
        report: Dict[str, Any] = {"updated": 0, "errors": []}
        for doc in database[collection].find({}, {"name": 1, "dashed_name": 1}):
            slug = dashed_name(doc["name"])
            if doc.get("dashed_name") == slug:
                continue
            try:
                database[collection].update_one({"_id": doc["_id"]}, {"$set": {"dashed_name": slug}})
            except DuplicateKeyError as e:
                logger.warning("Could not refresh slug for %s %s: %s", kind, doc["_id"], e)
                report["errors"].append({"id": str(doc["_id"]), "name": doc["name"], "error": str(e)})
                continue
            report["updated"] += 1
        results[collection] = report
    return results
