"""Helpers shared by the Mongo-backed services: ids, timestamps, pagination."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId

from syndata.core.exceptions import BadRequestException, NotFoundException

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def utcnow() -> datetime:
    # Mongo stores naive UTC datetimes; keep everything naive to compare cleanly.
    return datetime.utcnow()


def parse_object_id(value: str, not_found_message: str = "Resource not found") -> ObjectId:
    """Parse a path id; malformed ids are reported as missing resources."""
    if not value or not ObjectId.is_valid(value):
        raise NotFoundException(not_found_message)
    return ObjectId(value)


def to_public(doc: Optional[dict]) -> Optional[dict]:
    """Return a copy of a Mongo document with `_id` exposed as string `id`."""
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def clamp_limit(limit: Optional[int], default: int = DEFAULT_PAGE_SIZE) -> int:
    if limit is None or limit <= 0:
        return default
    return min(int(limit), MAX_PAGE_SIZE)


@dataclass
class Page:
    items: List[dict] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0


@dataclass
class CursorPage:
    items: List[dict] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


async def paginate(
    collection,
    query: Dict[str, Any],
    *,
    sort: List[tuple] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> Page:
    """Offset pagination returning public documents and the total match count."""
    limit = clamp_limit(limit)
    offset = max(0, int(offset or 0))
    sort = sort or [("created_at", -1), ("_id", -1)]

    total = await collection.count_documents(query)
    cursor = collection.find(query).sort(sort).skip(offset).limit(limit)
    docs = await cursor.to_list(length=limit)
    return Page(items=[to_public(d) for d in docs], total=total, limit=limit, offset=offset)


async def paginate_after(
    collection,
    query: Dict[str, Any],
    *,
    sort_field: str = "created_at",
    descending: bool = True,
    limit: Optional[int] = None,
    cursor_id: Optional[str] = None,
) -> CursorPage:
    """
    Keyset pagination on (sort_field, _id).

    The cursor is the id of the last document of the previous page. Ties on
    `sort_field` are broken by `_id` so pages never overlap or skip.
    """
    limit = clamp_limit(limit)
    query = dict(query)
    direction = -1 if descending else 1
    op = "$lt" if descending else "$gt"

    if cursor_id:
        if not ObjectId.is_valid(cursor_id):
            raise BadRequestException("Invalid cursor")
        anchor = await collection.find_one({"_id": ObjectId(cursor_id)}, {sort_field: 1})
        if not anchor:
            raise BadRequestException("Invalid cursor")
        anchor_value = anchor.get(sort_field)
        query = {
            "$and": [
                query,
                {
                    "$or": [
                        {sort_field: {op: anchor_value}},
                        {sort_field: anchor_value, "_id": {op: anchor["_id"]}},
                    ]
                },
            ]
        }

    cursor = collection.find(query).sort([(sort_field, direction), ("_id", direction)]).limit(limit + 1)
    docs = await cursor.to_list(length=limit + 1)
    has_more = len(docs) > limit
    docs = docs[:limit]
    next_cursor = str(docs[-1]["_id"]) if has_more and docs else None
    return CursorPage(items=[to_public(d) for d in docs], has_more=has_more, next_cursor=next_cursor)
