"""
SafeRide Database Module

Document store abstraction, MongoDB binding and Redis connection management.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import redis.asyncio as redis
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from saferide.config import settings
from saferide.exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)

# Collection names
RIDE_REQUESTS = "ride_requests"
RIDE_MATCHES = "ride_matches"
USERS = "users"
CHAT_MESSAGES = "chat_messages"
NOTIFICATIONS = "notifications"


# =============================================================================
# Document Store Interface
# =============================================================================


@dataclass(frozen=True)
class Filter:
    """Single field predicate. ``op`` is one of ==, !=, <, <=, >, >=, in."""

    field: str
    op: str
    value: Any

    OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")

    def __post_init__(self):
        if self.op not in self.OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


class DocumentStore(ABC):
    """
    Collection-oriented document store used by all services.

    Documents are plain dicts keyed by ``id``. ``update`` and ``delete`` accept
    an ``expected`` mapping of field -> value; the write only happens when the
    stored document still holds those values (compare-and-set), and the return
    value tells the caller whether it did.
    """

    @abstractmethod
    async def create(self, collection: str, document: Dict[str, Any]) -> str:
        """Insert a document, assigning ``id`` when absent. Returns the id."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id, or None."""

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Set ``fields`` (dotted paths allowed). False if missing or expectation fails."""

    @abstractmethod
    async def delete(
        self,
        collection: str,
        doc_id: str,
        expected: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Delete by id. False if missing or expectation fails."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching every filter."""


# =============================================================================
# MongoDB Binding
# =============================================================================

_MONGO_OPERATORS = {
    "==": "$eq",
    "!=": "$ne",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
    "in": "$in",
}


@contextmanager
def _wrap_errors(operation: str, collection: str):
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} on {collection} failed: {e}", exc_info=True)
        raise DependencyUnavailableError(f"Document store unavailable: {operation}") from e


def _to_mongo(document: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(document)
    doc["_id"] = doc.pop("id")
    return doc


def _from_mongo(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    doc = dict(document)
    doc["id"] = doc.pop("_id")
    return doc


def _build_query(filters: Sequence[Filter]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    for f in filters:
        field = "_id" if f.field == "id" else f.field
        condition = query.setdefault(field, {})
        condition[_MONGO_OPERATORS[f.op]] = list(f.value) if f.op == "in" else f.value
    return query


class MongoDocumentStore(DocumentStore):
    """DocumentStore over a Motor database. ``id`` is stored as ``_id``."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def create(self, collection: str, document: Dict[str, Any]) -> str:
        doc = dict(document)
        doc.setdefault("id", str(uuid.uuid4()))
        with _wrap_errors("create", collection):
            await self.db[collection].insert_one(_to_mongo(doc))
        return doc["id"]

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with _wrap_errors("get", collection):
            doc = await self.db[collection].find_one({"_id": doc_id})
        return _from_mongo(doc)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> bool:
        query = {"_id": doc_id, **(expected or {})}
        updates = {k: v for k, v in fields.items() if k != "id"}
        with _wrap_errors("update", collection):
            result = await self.db[collection].update_one(query, {"$set": updates})
        return result.matched_count == 1

    async def delete(
        self,
        collection: str,
        doc_id: str,
        expected: Optional[Dict[str, Any]] = None,
    ) -> bool:
        query = {"_id": doc_id, **(expected or {})}
        with _wrap_errors("delete", collection):
            result = await self.db[collection].delete_one(query)
        return result.deleted_count == 1

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with _wrap_errors("query", collection):
            cursor = self.db[collection].find(_build_query(filters))
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
            if limit:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=limit)
        return [_from_mongo(d) for d in docs]


# =============================================================================
# MongoDB Connection
# =============================================================================


class MongoDB:
    """MongoDB connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None
    store: Optional[MongoDocumentStore] = None


mongo = MongoDB()


async def init_mongodb():
    """Initialize MongoDB connection and create indexes."""
    mongo.client = AsyncIOMotorClient(
        settings.mongodb_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        connectTimeoutMS=settings.mongodb_timeout_ms,
    )
    mongo.db = mongo.client[settings.mongodb_database]
    mongo.store = MongoDocumentStore(mongo.db)

    db = mongo.db

    # Finder range scans on origin geohash, filtered by status
    await db[RIDE_REQUESTS].create_index([("origin.geohash", 1), ("status", 1)])
    await db[RIDE_REQUESTS].create_index([("user_id", 1), ("status", 1)])
    await db[RIDE_REQUESTS].create_index([("status", 1), ("expires_at", 1)])

    await db[RIDE_MATCHES].create_index([("status", 1), ("departure_time", 1)])
    await db[RIDE_MATCHES].create_index([("status", 1), ("created_at", 1)])
    await db[RIDE_MATCHES].create_index("participants.user_id")

    await db[CHAT_MESSAGES].create_index([("match_id", 1), ("timestamp", 1)])

    await db[NOTIFICATIONS].create_index([("user_id", 1), ("is_read", 1)])
    await db[NOTIFICATIONS].create_index("created_at")

    logger.info(f"MongoDB connected: {settings.mongodb_database}")


async def close_mongodb():
    """Close MongoDB connection."""
    if mongo.client:
        mongo.client.close()
        mongo.client = None
        mongo.db = None
        mongo.store = None


def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    if mongo.db is None:
        raise RuntimeError("Database not initialized")
    return mongo.db


def get_store() -> DocumentStore:
    """Get the document store bound to the live MongoDB connection."""
    if mongo.store is None:
        raise RuntimeError("Database not initialized")
    return mongo.store


# =============================================================================
# Redis Connection
# =============================================================================


class RedisClient:
    """Redis connection manager."""

    client: Optional[redis.Redis] = None


redis_client = RedisClient()


async def init_redis():
    """Initialize Redis connection. Locking is disabled when no URL is configured."""
    if not settings.redis_url:
        logger.warning("REDIS_URL not set; request locks are disabled")
        return
    redis_client.client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=30,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        socket_keepalive=True,
    )


async def close_redis():
    """Close Redis connection."""
    if redis_client.client:
        await redis_client.client.aclose()
        redis_client.client = None


def get_redis() -> Optional[redis.Redis]:
    """Get Redis client instance, or None when Redis is not configured."""
    return redis_client.client


# =============================================================================
# Combined Initialization
# =============================================================================


async def init_db():
    """Initialize all database connections."""
    await init_mongodb()
    await init_redis()


async def close_db():
    """Close all database connections."""
    await close_mongodb()
    await close_redis()
