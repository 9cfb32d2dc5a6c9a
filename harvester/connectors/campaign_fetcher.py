"""
Browser-backed campaign fetcher.

One WebDriver session per fetch:
navigate -> wait for content -> [apply subcategory filter] -> load more ->
scroll -> capture HTML -> quit -> parse.
The session is blocking, so it runs in a worker thread.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional
from urllib.parse import quote

from selenium.webdriver.remote.webdriver import WebDriver

from harvester.config import settings
from harvester.connectors.actions.campaign_actions import (
    CampaignActions,
    FetcherTimings,
    is_detached_error,
)
from harvester.connectors.base import CampaignSource
from harvester.connectors.helpers.selenium_helpers import SeleniumHelpers
from harvester.connectors.selectors.campaign import CampaignSelectors
from harvester.errors import AutomationError, ScraperError
from harvester.models.campaign import CampaignResult
from harvester.parsers.campaign_parser import parse_campaign
from harvester.schemas.requests import ScrapeRequest
from harvester.worker.executor import SeleniumExecutor

logger = logging.getLogger(__name__)


class CampaignFetcher(CampaignSource):
    """Scrapes campaign pages with Selenium."""

    def __init__(
        self,
        timings: FetcherTimings = None,
        executor_factory: Callable[[], SeleniumExecutor] = SeleniumExecutor,
        base_url: str = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timings = timings or FetcherTimings.from_settings()
        self.executor_factory = executor_factory
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "campaign_browser"

    # ========== SETUP ==========

    def build_url(self, campaign_id: str, category: Optional[str] = None) -> str:
        url = self.base_url + settings.CAMPAIGN_PATH.format(campaign_id=quote(campaign_id, safe=""))
        if category:
            url += f"?{settings.CATEGORY_QUERY_PARAM}={quote(category, safe='')}"
        return url

    def _make_logger(self, campaign_id: str):
        def log(msg: str):
            logger.info(f"[{campaign_id}] {msg}")
        return log

    def _create_actions(self, driver: WebDriver, log_func) -> CampaignActions:
        helpers = SeleniumHelpers(driver, timeout=self.timings.page_load_timeout)
        selectors = CampaignSelectors()
        return CampaignActions(driver, helpers, selectors, self.timings, log_func, sleep=self._sleep)

    # ========== FETCH ==========

    async def fetch(self, request: ScrapeRequest) -> CampaignResult:
        return await asyncio.to_thread(self._fetch_sync, request)

    def _fetch_sync(self, request: ScrapeRequest) -> CampaignResult:
        log = self._make_logger(request.campaign_id)
        executor = self.executor_factory()
        try:
            executor.start()
            log("🚀 Browser session started")
            actions = self._create_actions(executor.driver, log)

            actions.navigate(self.build_url(request.campaign_id, request.category))
            actions.wait_for_content()
            if request.subcategory:
                actions.apply_subcategory_filter(request.subcategory)
            actions.load_more(request.max_load_more_clicks)
            actions.scroll_passes()
            html = actions.page_source()
        except ScraperError:
            raise
        except Exception as e:
            raise AutomationError(f"Failed to scrape campaign {request.campaign_id}: {e}") from e
        finally:
            executor.stop()
            log("🛑 Session ended")

        try:
            result = parse_campaign(request.campaign_id, html)
        except ScraperError:
            raise
        except Exception as e:
            raise AutomationError(f"Failed to scrape campaign {request.campaign_id}: {e}") from e

        log(f"✅ Extracted {len(result.item_ids)} items")
        return result

    # ========== DISCOVERY ==========

    async def discover_subcategories(self, campaign_id: str, category: str) -> List[str]:
        """
        Subcategory labels under ``category``.

        A detached page context is retried from scratch; any other failure
        gives an empty list so the caller can fall back to a plain category
        scrape.
        """
        attempts = self.timings.discovery_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                subcategories = await asyncio.to_thread(self._discover_sync, campaign_id, category)
            except Exception as e:
                if is_detached_error(e) and attempt < attempts:
                    logger.warning(
                        f"⚠️ Page context detached during discovery (attempt {attempt}/{attempts}), retrying..."
                    )
                    await asyncio.sleep(self.timings.discovery_retry_delay)
                    continue
                logger.error(f"❌ Error extracting subcategories for {campaign_id}/{category}: {e}")
                return []

            await asyncio.sleep(self.timings.discovery_settle)
            logger.info(f"Found {len(subcategories)} subcategories: {', '.join(subcategories)}")
            return subcategories
        return []

    def _discover_sync(self, campaign_id: str, category: str) -> List[str]:
        log = self._make_logger(campaign_id)
        executor = self.executor_factory()
        try:
            executor.start()
            actions = self._create_actions(executor.driver, log)
            actions.navigate(self.build_url(campaign_id, category))
            actions.wait_for_content()
            return actions.discover_subcategories()
        finally:
            executor.stop()
