"""
MongoDB document models using Beanie ODM.
"""

from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field

from harvester.utils.date_utils import get_now


class StoredEntry(Document):
    """One durable key-value pair (job record or cache mirror entry)."""
    id: str
    value: Any = None
    updated_at: datetime = Field(default_factory=get_now)

    class Settings:
        name = "storage"


MONGO_MODELS = [StoredEntry]
