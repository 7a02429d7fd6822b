"""
MongoDB database connection and utilities.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from syndata.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        cls.client = AsyncIOMotorClient(settings.MONGO_URI)
        cls.db = cls.client[settings.MONGO_DB_NAME]

        # Create indexes
        await cls._create_indexes()

        logger.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls):
        """Create database indexes for better query performance."""
        # Users collection
        await cls.db.users.create_index("email", unique=True)

        # Customers collection
        await cls.db.customers.create_index("email", unique=True)
        await cls.db.customers.create_index([("created_at", -1), ("_id", -1)])
        await cls.db.customer_audit_logs.create_index([("customer_id", 1), ("timestamp", -1)])

        # Projects collection
        await cls.db.projects.create_index("customer_id")
        await cls.db.projects.create_index("status")

        # Jobs collection
        await cls.db.jobs.create_index([("project_id", 1), ("created_at", -1)])
        await cls.db.jobs.create_index([("user_id", 1), ("status", 1)])
        await cls.db.jobs.create_index("pipeline_job_id", sparse=True)

        # Rate limit windows expire on their own
        await cls.db.rate_limits.create_index("expires_at", expireAfterSeconds=0)

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        return cls.db[name]


def get_db() -> AsyncIOMotorDatabase:
    """Get the database instance."""
    return Database.db
