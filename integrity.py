"""
Guarded deletes for entities that products point at.

A brand, category or subcategory can only be removed once no product
references it. Deleting a category also removes its subcategories (so it is
refused while products reference any of them, whatever category those
products are filed under), and any
priority entries pointing at the removed records go with them.

The check and the delete are separate writes: a product created in between
can end up with a dangling reference. That window is accepted.
"""

import logging
from enum import Enum
from typing import Any, Dict, List

from bson import ObjectId
from pymongo.database import Database

from database import to_object_id
from errors import NotFound, ReferencedEntityConflict

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 3


class EntityKind(str, Enum):
    BRAND = "Brand"
    CATEGORY = "Category"
    SUBCATEGORY = "SubCategory"

    @property
    def collection(self) -> str:
        return self.value.lower()

    @property
    def product_field(self) -> str:
        return {
            EntityKind.BRAND: "brand",
            EntityKind.CATEGORY: "category",
            EntityKind.SUBCATEGORY: "sub_category",
        }[self]

    @property
    def priority_type(self) -> str:
        # Priority records spell the subcategory type without the capital C
        return "Subcategory" if self is EntityKind.SUBCATEGORY else self.value


def referencing_products(database: Database, kind: EntityKind, match: Any) -> Dict[str, Any]:
    """Count products whose ``kind`` field matches ``match``, an id or a query operator."""
    query = {kind.product_field: match}
    count = database["product"].count_documents(query)
    samples: List[str] = []
    if count:
        cursor = database["product"].find(query, {"name": 1}).limit(SAMPLE_SIZE)
        samples = [p["name"] for p in cursor]
    return {"count": count, "samples": samples}


def guarded_delete(database: Database, kind: EntityKind, entity_id: str) -> Dict[str, Any]:
    oid = to_object_id(entity_id, kind.value.lower())
    collection = database[kind.collection]
    if collection.find_one({"_id": oid}, {"_id": 1}) is None:
        raise NotFound(f"{kind.value} not found")

    refs = referencing_products(database, kind, oid)
    if refs["count"]:
        logger.info("Refusing to delete %s %s: %d products reference it", kind.value, oid, refs["count"])
        raise ReferencedEntityConflict(kind.value.lower(), refs["count"], refs["samples"])

    cascaded: List[ObjectId] = []
    if kind is EntityKind.CATEGORY:
        cascaded = [s["_id"] for s in database["subcategory"].find({"category": oid}, {"_id": 1})]
        # a subcategory moved here can still carry products filed under their old category
        refs = referencing_products(database, EntityKind.SUBCATEGORY, {"$in": cascaded})
        if refs["count"]:
            logger.info("Refusing to delete %s %s: %d products reference its subcategories", kind.value, oid, refs["count"])
            raise ReferencedEntityConflict(kind.value.lower(), refs["count"], refs["samples"])

    removed_priorities = 0
    if cascaded:
        database["subcategory"].delete_many({"_id": {"$in": cascaded}})
        removed_priorities += database["priority"].delete_many(
            {"type": EntityKind.SUBCATEGORY.priority_type, "object_id": {"$in": cascaded}}
        ).deleted_count

    collection.delete_one({"_id": oid})
    removed_priorities += database["priority"].delete_many(
        {"type": kind.priority_type, "object_id": oid}
    ).deleted_count

    logger.info(
        "Deleted %s %s (%d subcategories, %d priorities removed)",
        kind.value, oid, len(cascaded), removed_priorities,
    )
    return {
        "deleted": str(oid),
        "cascaded_subcategories": len(cascaded),
        "removed_priorities": removed_priorities,
    }
