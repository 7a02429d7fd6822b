"""Customer accounts service (admin console)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from syndata.core.database import Database
from syndata.core.documents import CursorPage, paginate_after, parse_object_id, to_public, utcnow
from syndata.core.exceptions import BadRequestException, ConflictException, NotFoundException
from syndata.customers.audit import AuditService
from syndata.customers.models import CustomerCreate, CustomerUpdate, UsageStatistics, UsageUpdate

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"created_at", "updated_at", "name"}
# Sub-documents patched field by field; anything else is replaced whole.
NESTED_FIELDS = ("contact_info", "subscription_details", "settings")


def _flatten_update(incoming: dict) -> dict:
    flat = {}
    for field, value in incoming.items():
        if field in NESTED_FIELDS:
            for key, sub_value in value.items():
                flat[f"{field}.{key}"] = sub_value
        else:
            flat[field] = value
    return flat


def _lookup(doc: dict, path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _diff(existing: dict, updates: dict) -> dict:
    """Audit diff keyed like the document, so sub-document fields nest."""
    changes: Dict[str, Any] = {}
    for path, value in updates.items():
        *parents, leaf = path.split(".")
        node = changes
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = {"old": _lookup(existing, path), "new": value}
    return changes


class CustomerService:
    @staticmethod
    def _collection():
        return Database.get_collection("customers")

    @classmethod
    async def _load(cls, customer_id: str) -> dict:
        doc = await cls._collection().find_one({"_id": parse_object_id(customer_id, "Customer not found")})
        if not doc:
            raise NotFoundException("Customer not found")
        return doc

    @classmethod
    async def _ensure_email_free(cls, email: str, exclude_id: Optional[ObjectId] = None) -> None:
        query: Dict[str, Any] = {"email": email}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if await cls._collection().find_one(query, {"_id": 1}):
            raise ConflictException("A customer with this email already exists")

    # ==================== CRUD ====================

    @classmethod
    async def list_customers(
        cls,
        *,
        status: Optional[str] = None,
        billing_tier: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        sort: str = "created_at",
        order: str = "desc",
    ) -> CursorPage:
        if sort not in SORTABLE_FIELDS:
            raise BadRequestException(f"Cannot sort by {sort}")
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if billing_tier:
            query["billing_tier"] = billing_tier
        return await paginate_after(
            cls._collection(),
            query,
            sort_field=sort,
            descending=order != "asc",
            limit=limit,
            cursor_id=cursor,
        )

    @classmethod
    async def create_customer(cls, data: CustomerCreate, actor: str) -> dict:
        email = data.email.lower()
        await cls._ensure_email_free(email)

        now = utcnow()
        doc = data.model_dump()
        doc.update(
            {
                "email": email,
                "usage_statistics": UsageStatistics().model_dump(),
                "service_account": None,
                "created_at": now,
                "updated_at": now,
            }
        )
        try:
            result = await cls._collection().insert_one(doc)
        except DuplicateKeyError:
            raise ConflictException("A customer with this email already exists")

        customer_id = str(result.inserted_id)
        await AuditService.record(customer_id, "create", actor, {"email": {"old": None, "new": email}})
        return to_public(doc)

    @classmethod
    async def get_customer(cls, customer_id: str) -> dict:
        return to_public(await cls._load(customer_id))

    @classmethod
    async def update_customer(cls, customer_id: str, data: CustomerUpdate, actor: str) -> dict:
        existing = await cls._load(customer_id)
        incoming = data.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in incoming:
            incoming["email"] = incoming["email"].lower()
            if incoming["email"] != existing.get("email"):
                await cls._ensure_email_free(incoming["email"], exclude_id=existing["_id"])

        updates = {
            path: value for path, value in _flatten_update(incoming).items() if _lookup(existing, path) != value
        }
        if not updates:
            return to_public(existing)
        changes = _diff(existing, updates)

        try:
            doc = await cls._collection().find_one_and_update(
                {"_id": existing["_id"]},
                {"$set": {**updates, "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ConflictException("A customer with this email already exists")

        action = "status_change" if "status" in changes else "update"
        await AuditService.record(customer_id, action, actor, changes)
        return to_public(doc)

    @classmethod
    async def delete_customer(cls, customer_id: str, actor: str) -> dict:
        """Soft delete: the account is suspended, nothing is removed."""
        existing = await cls._load(customer_id)
        doc = await cls._collection().find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": {"status": "suspended", "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        await AuditService.record(
            customer_id, "delete", actor, {"status": {"old": existing.get("status"), "new": "suspended"}}
        )
        logger.info(f"Customer {customer_id} suspended by {actor}")
        return to_public(doc)

    # ==================== Usage ====================

    @classmethod
    async def get_usage(cls, customer_id: str) -> dict:
        customer = await cls._load(customer_id)
        projects = await Database.get_collection("projects").find(
            {"customer_id": customer_id}, {"_id": 1, "status": 1, "storage": 1}
        ).to_list(length=None)
        project_ids = [str(p["_id"]) for p in projects]

        jobs_by_status: Dict[str, int] = {}
        if project_ids:
            rows = await Database.get_collection("jobs").aggregate(
                [
                    {"$match": {"project_id": {"$in": project_ids}}},
                    {"$group": {"_id": "$status", "count": {"$sum": 1}}},
                ]
            ).to_list(length=None)
            jobs_by_status = {row["_id"]: int(row["count"]) for row in rows}

        return {
            "customer_id": customer_id,
            "usage_statistics": customer.get("usage_statistics") or {},
            "live": {
                "projects": len(projects),
                "active_projects": sum(1 for p in projects if p.get("status") == "active"),
                "jobs_by_status": jobs_by_status,
                "total_jobs": sum(jobs_by_status.values()),
                "storage_used_bytes": sum(
                    int((p.get("storage") or {}).get("used_storage_bytes") or 0) for p in projects
                ),
            },
        }

    @classmethod
    async def update_usage(cls, customer_id: str, data: UsageUpdate, actor: str) -> dict:
        existing = await cls._load(customer_id)
        incoming = data.model_dump(exclude_none=True)
        if not incoming:
            raise BadRequestException("No usage fields provided")

        current = existing.get("usage_statistics") or {}
        now = utcnow()
        updates = {f"usage_statistics.{k}": v for k, v in incoming.items()}
        updates["usage_statistics.last_activity_at"] = now
        updates["updated_at"] = now
        await cls._collection().update_one({"_id": existing["_id"]}, {"$set": updates})

        await AuditService.record(
            customer_id,
            "usage_update",
            actor,
            {"usage_statistics": {k: {"old": current.get(k), "new": v} for k, v in incoming.items()}},
        )
        return await cls.get_usage(customer_id)
