from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from harvester.schemas.enums import DiscountType


class CampaignResult(BaseModel):
    """Scraped campaign: headline, schedule, discount and the items on offer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    details: str = ""
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: float = Field(default=0, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    item_ids: List[str] = Field(default_factory=list)

    @field_validator("item_ids")
    @classmethod
    def _non_empty_ids(cls, value: List[str]) -> List[str]:
        if any(not item for item in value):
            raise ValueError("All item ids must be non-empty strings")
        return value
