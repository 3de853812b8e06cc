"""
Enquiry number allocation.

Numbers look like ``Enquiry_<n>``. The next ``n`` is read from the most
recently created enquiry and the unique index on ``enquiry_number`` is the
only thing that decides who wins a race: a losing insert raises
``DuplicateKeyError`` and the whole allocation is retried from the read,
up to ``max_attempts`` times.

Each collision also raises the floor for the next attempt, so a taken
number is never proposed twice even when the row holding the highest
number is not the most recently created one.
"""

import logging
import re
from typing import Any, Dict

from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import utcnow
from errors import CorruptSequenceState, SequenceConflict

logger = logging.getLogger(__name__)

ENQUIRY_COLLECTION = "enquiry"
_TRAILING_DIGITS = re.compile(r"(\d+)$")


def number_suffix(number: str) -> int:
    match = _TRAILING_DIGITS.search(number)
    if match is None:
        raise CorruptSequenceState(f"Stored enquiry number {number!r} has no numeric suffix")
    return int(match.group(1))


def next_enquiry_number(collection: Collection, prefix: str = config.ENQUIRY_PREFIX, floor: int = 1) -> str:
    """Number following the latest enquiry, never below ``floor``."""
    latest = collection.find_one(
        {"enquiry_number": {"$regex": f"^{re.escape(prefix)}"}},
        sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
    )
    n = 1 if latest is None else number_suffix(latest["enquiry_number"]) + 1
    return f"{prefix}{max(n, floor)}"


def create_enquiry(
    database: Database,
    data: Dict[str, Any],
    prefix: str = config.ENQUIRY_PREFIX,
    max_attempts: int = config.ENQUIRY_MAX_ATTEMPTS,
) -> Dict[str, Any]:
    """Persist a new enquiry under the next free number and return the stored document."""
    collection = database[ENQUIRY_COLLECTION]
    floor = 1
    for attempt in range(1, max_attempts + 1):
        number = next_enquiry_number(collection, prefix, floor)
        now = utcnow()
        doc = {**data, "enquiry_number": number, "created_at": now, "updated_at": now}
        try:
            result = collection.insert_one(doc)
        except DuplicateKeyError:
            logger.warning("Enquiry number %s already taken (attempt %d/%d)", number, attempt, max_attempts)
            floor = number_suffix(number) + 1
            continue
        doc["_id"] = result.inserted_id
        logger.info("Allocated enquiry number %s", number)
        return doc

    raise SequenceConflict()
