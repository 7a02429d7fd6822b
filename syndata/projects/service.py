"""Projects service - CRUD, team membership, metrics."""

from __future__ import annotations

import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from starlette.concurrency import run_in_threadpool

from syndata.core.config import get_settings
from syndata.core.database import Database
from syndata.core.documents import Page, paginate, parse_object_id, to_public, utcnow
from syndata.core.exceptions import (
    AppException,
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from syndata.projects.models import ProjectCreate, ProjectUpdate
from syndata.projects.roles import ROLE_RANK, require_role
from syndata.storage.service import StorageError, StorageService

settings = get_settings()
logger = logging.getLogger(__name__)


class ProjectService:
    @staticmethod
    def _collection():
        return Database.get_collection("projects")

    @classmethod
    async def _load(cls, project_id: str) -> dict:
        doc = await cls._collection().find_one({"_id": parse_object_id(project_id, "Project not found")})
        if not doc:
            raise NotFoundException("Project not found")
        return doc

    @classmethod
    async def get_for_member(cls, project_id: str, user_id: str, minimum: str = "viewer") -> dict:
        """Load a project and check the caller's role; returns the public document."""
        doc = await cls._load(project_id)
        require_role(doc, user_id, minimum)
        return to_public(doc)

    @classmethod
    async def require_active(cls, project_id: str, user_id: str, minimum: str = "member") -> dict:
        project = await cls.get_for_member(project_id, user_id, minimum)
        if project.get("status") != "active":
            raise BadRequestException("Project is archived")
        return project

    # ==================== Customer quota ====================

    @staticmethod
    async def _check_customer_quota(customer_id: Optional[str]) -> None:
        if not customer_id or not ObjectId.is_valid(customer_id):
            return
        customer = await Database.get_collection("customers").find_one({"_id": ObjectId(customer_id)})
        if not customer:
            return
        if customer.get("status") != "active":
            raise ForbiddenException("Customer account is not active")
        max_projects = int((customer.get("settings") or {}).get("max_projects") or 0)
        if max_projects:
            active = await Database.get_collection("projects").count_documents(
                {"customer_id": customer_id, "status": "active"}
            )
            if active >= max_projects:
                raise ForbiddenException(f"Project limit reached ({max_projects}) for this account")

    @staticmethod
    async def _bump_customer_projects(customer_id: Optional[str], delta: int) -> None:
        if customer_id and ObjectId.is_valid(customer_id):
            await Database.get_collection("customers").update_one(
                {"_id": ObjectId(customer_id)},
                {"$inc": {"usage_statistics.total_projects": delta}, "$set": {"updated_at": utcnow()}},
            )

    # ==================== CRUD ====================

    @classmethod
    async def create_project(cls, user: dict, data: ProjectCreate) -> dict:
        customer_id = user.get("customer_id")
        await cls._check_customer_quota(customer_id)

        oid = ObjectId()
        project_id = str(oid)
        storage = {"bucket_name": None, "region": None, "used_storage_bytes": 0}

        if settings.PROJECT_BUCKETS_ENABLED:
            storage_service = StorageService()
            try:
                descriptor = await run_in_threadpool(storage_service.create_project_bucket, project_id, customer_id)
            except StorageError as e:
                logger.error(f"Bucket creation failed for project {project_id}: {e}")
                raise AppException("Failed to provision project storage")
            storage.update(descriptor)
            if data.settings.data_retention_days:
                try:
                    await run_in_threadpool(
                        storage_service.set_retention, storage["bucket_name"], data.settings.data_retention_days
                    )
                except StorageError as e:
                    logger.warning(f"Could not apply retention to {storage['bucket_name']}: {e}")

        now = utcnow()
        doc = {
            "_id": oid,
            "name": data.name.strip(),
            "description": data.description,
            "status": "active",
            "customer_id": customer_id,
            "owner_id": user["id"],
            "settings": data.settings.model_dump(),
            "storage": storage,
            "team_members": {user["id"]: "owner"},
            "created_at": now,
            "updated_at": now,
        }

        try:
            await cls._collection().insert_one(doc)
        except Exception:
            if storage["bucket_name"]:
                logger.warning(f"Rolling back bucket {storage['bucket_name']} after failed project insert")
                try:
                    await run_in_threadpool(StorageService().delete_project_bucket, storage["bucket_name"], True)
                except StorageError as cleanup_error:
                    logger.error(f"Orphaned bucket {storage['bucket_name']}: {cleanup_error}")
            raise

        await cls._bump_customer_projects(customer_id, 1)
        logger.info(f"User {user['id']} created project {project_id}")
        return to_public(doc)

    @classmethod
    async def list_projects(
        cls,
        user_id: str,
        *,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page:
        query = {f"team_members.{user_id}": {"$exists": True}}
        if status:
            query["status"] = status
        return await paginate(cls._collection(), query, limit=limit, offset=offset)

    @classmethod
    async def update_project(cls, project_id: str, user_id: str, data: ProjectUpdate) -> dict:
        project = await cls.get_for_member(project_id, user_id, "admin")

        # Status changes go through archive/restore so the owner rule,
        # the customer quota and the project counter all apply.
        if data.status is not None and data.status != project["status"]:
            if data.status == "archived":
                project = await cls.archive_project(project_id, user_id)
            else:
                project = await cls.restore_project(project_id, user_id)

        updates = {}
        if data.name is not None:
            updates["name"] = data.name.strip()
        if data.description is not None:
            updates["description"] = data.description
        retention_changed = False
        if data.settings is not None:
            for key, value in data.settings.model_dump(exclude_none=True).items():
                if project["settings"].get(key) != value:
                    updates[f"settings.{key}"] = value
                    retention_changed = retention_changed or key == "data_retention_days"

        if not updates:
            return project
        updates["updated_at"] = utcnow()

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(project_id)},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

        bucket = (doc.get("storage") or {}).get("bucket_name")
        if retention_changed and bucket:
            try:
                await run_in_threadpool(StorageService().set_retention, bucket, doc["settings"]["data_retention_days"])
            except StorageError as e:
                logger.warning(f"Could not update retention on {bucket}: {e}")

        logger.info(f"Project {project_id} updated by {user_id}: {sorted(updates)}")
        return to_public(doc)

    @classmethod
    async def archive_project(cls, project_id: str, user_id: str) -> dict:
        """Soft delete. Jobs already running keep running."""
        project = await cls.get_for_member(project_id, user_id, "owner")
        if project["status"] == "archived":
            return project

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(project_id), "status": "active"},
            {"$set": {"status": "archived", "archived_at": utcnow(), "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return await cls.get_for_member(project_id, user_id)
        await cls._bump_customer_projects(doc.get("customer_id"), -1)
        logger.info(f"Project {project_id} archived by {user_id}")
        return to_public(doc)

    @classmethod
    async def restore_project(cls, project_id: str, user_id: str) -> dict:
        project = await cls.get_for_member(project_id, user_id, "owner")
        if project["status"] == "active":
            return project
        await cls._check_customer_quota(project.get("customer_id"))

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(project_id), "status": "archived"},
            {"$set": {"status": "active", "updated_at": utcnow()}, "$unset": {"archived_at": ""}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return await cls.get_for_member(project_id, user_id)
        await cls._bump_customer_projects(doc.get("customer_id"), 1)
        logger.info(f"Project {project_id} restored by {user_id}")
        return to_public(doc)

    # ==================== Team ====================

    @classmethod
    async def add_member(cls, project_id: str, user_id: str, member_id: str, role: str) -> dict:
        project = await cls.get_for_member(project_id, user_id, "admin")
        member = await Database.get_collection("users").find_one(
            {"_id": parse_object_id(member_id, "User not found")}, {"_id": 1}
        )
        if not member:
            raise NotFoundException("User not found")

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(project_id), f"team_members.{member_id}": {"$exists": False}},
            {"$set": {f"team_members.{member_id}": role, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise ConflictException("User is already a member of this project")
        logger.info(f"Added {member_id} to project {project['id']} as {role}")
        return to_public(doc)

    @classmethod
    async def _guard_member_change(cls, project: dict, actor_id: str, member_id: str) -> str:
        current = (project.get("team_members") or {}).get(member_id)
        if current is None:
            raise NotFoundException("Member not found")
        if current == "owner":
            raise ForbiddenException("The project owner cannot be changed or removed")
        actor_role = project["team_members"][actor_id]
        if ROLE_RANK[current] >= ROLE_RANK[actor_role] and actor_id != member_id:
            raise ForbiddenException("You cannot modify a member with an equal or higher role")
        return current

    @classmethod
    async def update_member_role(cls, project_id: str, user_id: str, member_id: str, role: str) -> dict:
        project = await cls.get_for_member(project_id, user_id, "admin")
        await cls._guard_member_change(project, user_id, member_id)
        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(project_id), f"team_members.{member_id}": {"$exists": True}},
            {"$set": {f"team_members.{member_id}": role, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundException("Member not found")
        return to_public(doc)

    @classmethod
    async def remove_member(cls, project_id: str, user_id: str, member_id: str) -> dict:
        project = await cls.get_for_member(project_id, user_id, "admin")
        await cls._guard_member_change(project, user_id, member_id)
        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(project_id)},
            {"$unset": {f"team_members.{member_id}": ""}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info(f"Removed {member_id} from project {project_id}")
        return to_public(doc)

    # ==================== Metrics ====================

    @classmethod
    async def get_metrics(cls, project_id: str, user_id: str) -> dict:
        project = await cls.get_for_member(project_id, user_id, "viewer")

        pipeline = [
            {"$match": {"project_id": project_id}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]
        rows = await Database.get_collection("jobs").aggregate(pipeline).to_list(length=None)
        by_status = {row["_id"]: int(row["count"]) for row in rows}

        storage = dict(project.get("storage") or {})
        object_count = None
        if storage.get("bucket_name"):
            try:
                used, object_count = await run_in_threadpool(
                    StorageService().get_bucket_usage, storage["bucket_name"]
                )
                storage["used_storage_bytes"] = used
                await cls._collection().update_one(
                    {"_id": ObjectId(project_id)},
                    {"$set": {"storage.used_storage_bytes": used}},
                )
            except StorageError as e:
                logger.warning(f"Could not refresh storage usage for project {project_id}: {e}")

        return {
            "project_id": project_id,
            "total_jobs": sum(by_status.values()),
            "jobs_by_status": by_status,
            "storage": storage,
            "object_count": object_count,
        }
