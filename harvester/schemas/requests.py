import re
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from harvester.config import settings
from harvester.storage.keys import StorageKeys

CAMPAIGN_ID_RE = re.compile(r"^[A-Za-z0-9]+$")

CorrelationKey = Tuple[str, Optional[str], Optional[str]]


class ScrapeRequest(BaseModel):
    """A validated request to scrape one campaign, optionally narrowed by filters."""

    model_config = ConfigDict(frozen=True)

    campaign_id: str
    category: Optional[str] = None
    subcategory: Optional[str] = None
    max_load_more_clicks: int = Field(
        default_factory=lambda: settings.DEFAULT_LOAD_MORE_CLICKS,
        ge=1,
        le=settings.MAX_LOAD_MORE_CLICKS,
    )

    @field_validator("campaign_id")
    @classmethod
    def _check_campaign_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Campaign ID is required and must be a non-empty string")
        if not CAMPAIGN_ID_RE.match(value):
            raise ValueError("Campaign ID must contain only alphanumeric characters")
        return value

    @field_validator("category", "subcategory")
    @classmethod
    def _check_filter(cls, value: Optional[str], info) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError(f"{info.field_name} must be a non-empty string or null")
        return value

    @model_validator(mode="after")
    def _subcategory_needs_category(self):
        if self.subcategory is not None and self.category is None:
            raise ValueError("Subcategory cannot be specified without a category")
        return self

    @property
    def correlation_key(self) -> CorrelationKey:
        return (self.campaign_id, self.category, self.subcategory)

    @property
    def cache_key(self) -> str:
        return StorageKeys.campaign_key(self.campaign_id, self.category, self.subcategory)

    @property
    def is_fan_out(self) -> bool:
        """Category given without subcategory: split per subcategory."""
        return self.category is not None and self.subcategory is None
