from typing import Optional
from urllib.parse import quote


class StorageKeys:
    """Key layout shared by the job store and the cache mirror."""

    CAMPAIGN_PREFIX = "campaign"
    JOB_PREFIX = "job:"
    CACHE_PREFIX = "cache:"

    @classmethod
    def campaign_key(
        cls,
        campaign_id: str,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> str:
        """Segments are percent-encoded so a ``:`` inside a label stays inside its segment."""
        parts = [campaign_id]
        if category:
            parts.append(category)
            if subcategory:
                parts.append(subcategory)
        return ":".join([cls.CAMPAIGN_PREFIX] + [quote(part, safe="") for part in parts])

    @classmethod
    def job_key(cls, job_id: str) -> str:
        return f"{cls.JOB_PREFIX}{job_id}"

    @classmethod
    def cache_key(cls, key: str) -> str:
        return f"{cls.CACHE_PREFIX}{key}"

    @classmethod
    def strip_cache_prefix(cls, storage_key: str) -> str:
        return storage_key[len(cls.CACHE_PREFIX):]
