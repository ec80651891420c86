"""
Storage Medium

String-keyed storage for the portal. Every key holds one serialized value
(a JSON array for collections, a JSON object or plain string for the session
and theme keys), the same shape the browser's local storage used.

Two stores are available:
- MemoryStore: a process-local dict, used when no database is configured and in tests
- MongoStore: one MongoDB document per key, selected when DATABASE_URL and DATABASE_NAME are set
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pymongo import MongoClient

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

KV_COLLECTION = "kvstore"


class MemoryStore:
    """In-process key-value store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class MongoStore:
    """Key-value store backed by a single MongoDB collection.

    Documents look like {"_id": <key>, "value": <serialized string>, "updated_at": <datetime>}.
    """

    def __init__(self, database, collection_name: str = KV_COLLECTION):
        self._collection = database[collection_name]

    def get_item(self, key: str) -> Optional[str]:
        doc = self._collection.find_one({"_id": key})
        if not doc:
            return None
        return doc.get("value")

    def set_item(self, key: str, value: str) -> None:
        self._collection.replace_one(
            {"_id": key},
            {"_id": key, "value": value, "updated_at": datetime.now(timezone.utc)},
            upsert=True,
        )

    def remove_item(self, key: str) -> None:
        self._collection.delete_one({"_id": key})

    def keys(self) -> List[str]:
        return [doc["_id"] for doc in self._collection.find({}, {"_id": 1})]


_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]
    store = MongoStore(db)
    logger.info(f"Using MongoDB storage medium (database: {database_name})")
else:
    store = MemoryStore()
    logger.warning("DATABASE_URL/DATABASE_NAME not set, falling back to in-memory storage")


def get_store():
    """Return the configured storage medium."""
    return store
