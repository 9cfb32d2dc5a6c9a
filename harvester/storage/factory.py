from typing import Optional

from harvester.config import Settings, settings as default_settings
from harvester.storage.base import BaseStorage
from harvester.storage.json_file import JsonFileStorage
from harvester.storage.mongo import MongoStorage


def build_storage(settings: Settings = None) -> Optional[BaseStorage]:
    """Select the durable backend; ``none`` disables persistence."""
    settings = settings or default_settings
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "json":
        return JsonFileStorage(settings.STORAGE_PATH)
    if backend == "mongo":
        return MongoStorage(settings.MONGO_URI, settings.MONGO_DB_NAME)
    if backend == "none":
        return None
    raise ValueError(f"Unknown storage backend '{settings.STORAGE_BACKEND}'")
