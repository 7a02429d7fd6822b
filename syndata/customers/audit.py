"""Append-only audit trail for admin actions on customers."""

import logging
from typing import Any, Dict, List, Optional

from syndata.core.database import Database
from syndata.core.documents import clamp_limit, to_public, utcnow

logger = logging.getLogger(__name__)


class AuditService:
    @staticmethod
    def _collection():
        return Database.get_collection("customer_audit_logs")

    @classmethod
    async def record(
        cls,
        customer_id: str,
        action: str,
        actor: str,
        changes: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> None:
        await cls._collection().insert_one(
            {
                "customer_id": customer_id,
                "action": action,
                "actor": actor,
                "changes": changes or {},
                "reason": reason,
                "timestamp": utcnow(),
            }
        )
        logger.info(f"audit: {actor} {action} customer {customer_id}")

    @classmethod
    async def list_for_customer(cls, customer_id: str, limit: Optional[int] = None) -> List[dict]:
        limit = clamp_limit(limit, default=50)
        cursor = cls._collection().find({"customer_id": customer_id}).sort([("timestamp", -1), ("_id", -1)]).limit(limit)
        return [to_public(d) for d in await cursor.to_list(length=limit)]
