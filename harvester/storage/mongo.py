import logging
import re
from typing import Any, List, Optional

from harvester.db import close_db, init_db
from harvester.errors import StorageError
from harvester.models.mongo_models import StoredEntry
from harvester.storage.base import BaseStorage
from harvester.utils.date_utils import get_now

logger = logging.getLogger(__name__)


def _prefix_query(prefix: Optional[str]) -> dict:
    if not prefix:
        return {}
    return {"_id": {"$regex": f"^{re.escape(prefix)}"}}


class MongoStorage(BaseStorage):
    """Key-value storage on a single MongoDB collection (via Beanie)."""

    def __init__(self, mongo_uri: str = None, db_name: str = None):
        self.mongo_uri = mongo_uri
        self.db_name = db_name

    async def initialize(self) -> None:
        try:
            await init_db(self.mongo_uri, self.db_name)
        except Exception as e:
            raise StorageError(f"Failed to initialize MongoDB storage: {e}") from e
        logger.info("MongoDB storage initialized")

    async def close(self) -> None:
        await close_db()

    async def save(self, key: str, value: Any) -> None:
        try:
            await StoredEntry(id=key, value=value, updated_at=get_now()).save()
        except Exception as e:
            raise StorageError(f"Failed to save data to storage (key: {key}): {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            entry = await StoredEntry.get(key)
        except Exception as e:
            raise StorageError(f"Failed to read data from storage (key: {key}): {e}") from e
        return entry.value if entry else None

    async def delete(self, key: str) -> None:
        try:
            entry = await StoredEntry.get(key)
            if entry:
                await entry.delete()
        except Exception as e:
            raise StorageError(f"Failed to delete data from storage (key: {key}): {e}") from e

    async def list_keys(self, prefix: Optional[str] = None) -> List[str]:
        try:
            entries = await StoredEntry.find(_prefix_query(prefix)).to_list()
        except Exception as e:
            raise StorageError(f"Failed to list storage keys: {e}") from e
        return [entry.id for entry in entries]

    async def clear(self, prefix: Optional[str] = None) -> None:
        try:
            await StoredEntry.find(_prefix_query(prefix)).delete()
        except Exception as e:
            raise StorageError(f"Failed to clear storage: {e}") from e
