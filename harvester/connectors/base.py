from abc import ABC, abstractmethod
from typing import List

from harvester.models.campaign import CampaignResult
from harvester.schemas.requests import ScrapeRequest


class CampaignSource(ABC):
    """
    Interface for anything that can produce campaign results.
    """

    @abstractmethod
    async def fetch(self, request: ScrapeRequest) -> CampaignResult:
        """
        Scrapes one campaign, narrowed by the request's filters.
        :param request: validated scrape request
        :return: CampaignResult
        """
        pass

    @abstractmethod
    async def discover_subcategories(self, campaign_id: str, category: str) -> List[str]:
        """Subcategory labels available under ``category``; never raises."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
