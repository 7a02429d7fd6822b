"""Mongo-based fixed-window rate limiting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pymongo import ReturnDocument

from syndata.core.database import Database
from syndata.core.exceptions import TooManyRequestsException


@dataclass(frozen=True)
class RateLimitResult:
    count: int
    limit: int
    reset_seconds: int


class RateLimitService:
    @staticmethod
    def _collection():
        return Database.get_collection("rate_limits")

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @classmethod
    def _window(cls, window_seconds: int):
        now = cls._now()
        epoch = int(now.timestamp())
        start_epoch = (epoch // window_seconds) * window_seconds
        window_start = datetime.fromtimestamp(start_epoch, tz=timezone.utc)
        window_end = window_start + timedelta(seconds=window_seconds)
        reset_seconds = max(0, int((window_end - now).total_seconds()))
        return now, window_start, window_end, reset_seconds

    @staticmethod
    def _doc_id(key: str, window_start: datetime) -> str:
        return f"{key}:{int(window_start.timestamp())}"

    @classmethod
    async def hit(cls, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request against `key`; raise 429 once the window is over `limit`."""
        now, window_start, window_end, reset_seconds = cls._window(window_seconds)
        doc_id = cls._doc_id(key, window_start)

        doc = await cls._collection().find_one_and_update(
            {"_id": doc_id},
            {
                "$inc": {"count": 1},
                "$setOnInsert": {
                    "key": key,
                    "window_start": window_start,
                    "expires_at": window_end + timedelta(minutes=5),  # small buffer for TTL cleanup
                    "created_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

        count = int((doc or {}).get("count", 0))
        if count > int(limit):
            raise TooManyRequestsException(f"Rate limit exceeded. Try again in {reset_seconds} seconds.")

        return RateLimitResult(count=count, limit=int(limit), reset_seconds=reset_seconds)

    @classmethod
    async def peek(cls, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        """Current usage of the active window without counting a request."""
        _, window_start, _, reset_seconds = cls._window(window_seconds)
        doc = await cls._collection().find_one({"_id": cls._doc_id(key, window_start)})
        count = int((doc or {}).get("count", 0))
        return RateLimitResult(count=count, limit=int(limit), reset_seconds=reset_seconds)
