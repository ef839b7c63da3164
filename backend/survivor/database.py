"""
backend/survivor/database.py

Purpose:
    MongoDB connection bootstrap and index management for pool membership,
    survivor picks, persisted survivor status, the results cache and audit
    collections.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - survivor.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from survivor.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("survivor.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=2,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Pool membership ----
    await db.pool_members.create_index(
        [("pool_id", ASCENDING), ("user_id", ASCENDING)], unique=True,
    )
    await db.pool_members.create_index("participation.survivor.enabled")

    # ---- Persisted survivor status (one logical record per user per pool) ----
    await db.survivor_status.create_index(
        [("pool_id", ASCENDING), ("user_id", ASCENDING)], unique=True,
    )
    await db.survivor_status.create_index([("pool_id", ASCENDING), ("alive", DESCENDING)])

    # ---- Results cache (one doc per team/week) ----
    await db.results_cache.create_index([("week", ASCENDING), ("team", ASCENDING)], unique=True)

    # ---- Audit ----
    await db.audit_reports.create_index([("pool_id", ASCENDING), ("created_at", DESCENDING)])
    await db.audit_logs.create_index("timestamp")
    await db.audit_logs.create_index([("target_id", ASCENDING), ("timestamp", DESCENDING)])

    logger.info("Indexes ensured on %s", settings.MONGO_DB)
