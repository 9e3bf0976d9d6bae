from __future__ import annotations
from typing import Any, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from datetime import datetime, timezone

from settings import Settings, get_settings

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def get_db(settings: Optional[Settings] = None) -> AsyncIOMotorDatabase:
    # Motor connects lazily, so this never touches the network.
    global _client, _db
    if _db is None:
        settings = settings or get_settings()
        _client = AsyncIOMotorClient(
            settings.DATABASE_URL,
            serverSelectionTimeoutMS=settings.DATABASE_TIMEOUT_MS,
        )
        _db = _client[settings.DATABASE_NAME]
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_client(doc: dict[str, Any]) -> dict[str, Any]:
    # Rows that carry their own "id" (orders, settings) keep it.
    doc = dict(doc)
    oid = doc.pop("_id", None)
    if "id" not in doc and oid is not None:
        doc["id"] = str(oid)
    return doc


async def create_document(db: AsyncIOMotorDatabase, collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
    now = _utcnow()
    data_with_meta = {"created_at": now, "updated_at": now, **data}
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return to_client(inserted) if inserted else {}


async def get_documents(
    db: AsyncIOMotorDatabase,
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    sort: list[tuple[str, int]] | None = None,
    limit: int = 0,
) -> list[dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(to_client(d))
    return docs


async def update_document(
    db: AsyncIOMotorDatabase,
    collection_name: str,
    filter_dict: dict[str, Any],
    data: dict[str, Any],
) -> dict[str, Any] | None:
    """Update one row and return it as stored after the update, or None when nothing matched."""
    updated = await db[collection_name].find_one_and_update(
        filter_dict,
        {"$set": {**data, "updated_at": _utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return to_client(updated) if updated else None


async def delete_document(db: AsyncIOMotorDatabase, collection_name: str, filter_dict: dict[str, Any]) -> int:
    result = await db[collection_name].delete_one(filter_dict)
    return result.deleted_count


async def upsert_document(
    db: AsyncIOMotorDatabase,
    collection_name: str,
    filter_dict: dict[str, Any],
    data: dict[str, Any],
) -> None:
    await db[collection_name].update_one(
        filter_dict,
        {"$set": {**data, "updated_at": _utcnow()}},
        upsert=True,
    )
