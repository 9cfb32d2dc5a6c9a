"""
Actions module for the campaign page.
Encapsulates each step of a browser session (navigate, wait for content, apply
a subcategory filter, load more, scroll, discover subcategories) into methods
the fetcher sequences.

Everything here is blocking WebDriver code; the fetcher runs it in a worker
thread.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from selenium.common.exceptions import StaleElementReferenceException
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support import expected_conditions as EC

from harvester.config import Settings, settings as default_settings
from harvester.connectors.helpers.selenium_helpers import SeleniumHelpers
from harvester.connectors.selectors.campaign import CampaignSelectors
from harvester.errors import AutomationError, FilterApplicationError

logger = logging.getLogger(__name__)

NOISE_PREFIX_RE = re.compile(r"^(mostrar|ver|filtrar|aplicar|limpar|todos|page|página|qualquer)", re.IGNORECASE)
NOISE_EXPANSION_RE = re.compile(r"ver\s+mais|see\s+more|show\s+more|menos|less", re.IGNORECASE)
NOISE_EXACT_RE = re.compile(r"^(\d+|departamento|qualquer\s+departamento)$", re.IGNORECASE)

FIND_LOAD_MORE_JS = """
const [stableSelector, candidateSelector, excludedAncestors, texts, ariaTexts] = arguments;
for (const el of document.querySelectorAll(stableSelector)) {
    if (el.offsetParent !== null) return el;
}
for (const el of document.querySelectorAll(candidateSelector)) {
    if (el.closest(excludedAncestors)) continue;
    const text = (el.textContent || '').trim().toLowerCase();
    const label = (el.getAttribute('aria-label') || '').toLowerCase();
    if (texts.some(t => text.includes(t)) || ariaTexts.some(t => label.includes(t))) return el;
}
return null;
"""

DISCOVER_SUBCATEGORIES_JS = """
const [itemSelector, linkSelector] = arguments;
const found = [];
const add = (label) => {
    label = (label || '').trim();
    if (label && label.length < 150 && !found.includes(label)) found.push(label);
};
document.querySelectorAll(itemSelector).forEach(el => add(el.getAttribute('data-value') || el.textContent));
if (found.length === 0 && typeof refinement !== 'undefined' && refinement && refinement.subProductCategories) {
    Object.values(refinement.subProductCategories).forEach(list => {
        if (Array.isArray(list)) list.forEach(add);
    });
}
if (found.length === 0) {
    document.querySelectorAll(linkSelector).forEach(el => add(el.textContent));
}
return found;
"""


def is_subcategory_label(label: str) -> bool:
    """False for labels that are navigation controls, counters or placeholders."""
    label = label.strip()
    if len(label) <= 2:
        return False
    return not (
        NOISE_PREFIX_RE.match(label)
        or NOISE_EXPANSION_RE.search(label)
        or NOISE_EXACT_RE.match(label)
    )


def is_detached_error(error: Exception) -> bool:
    """The page context went away mid-evaluation; the whole flow may be retried."""
    return isinstance(error, StaleElementReferenceException) or "detached" in str(error).lower()


@dataclass(frozen=True)
class FetcherTimings:
    page_load_timeout: float = 30.0
    content_wait_timeout: float = 10.0
    content_settle: float = 2.0
    filter_panel_timeout: float = 5.0
    filter_attempts: int = 3
    filter_backoff: float = 2.0
    filter_settle: float = 2.0
    load_more_scroll_pause: float = 0.5
    load_more_click_settle: float = 1.0
    load_more_growth_timeout: float = 5.0
    load_more_between_clicks: float = 2.0
    scroll_passes: int = 5
    scroll_pass_delay: float = 1.0
    discovery_retries: int = 2
    discovery_retry_delay: float = 2.0
    discovery_settle: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings = None) -> "FetcherTimings":
        settings = settings or default_settings
        return cls(
            page_load_timeout=settings.PAGE_LOAD_TIMEOUT_SECONDS,
            content_wait_timeout=settings.CONTENT_WAIT_TIMEOUT_SECONDS,
            content_settle=settings.CONTENT_SETTLE_SECONDS,
            filter_panel_timeout=settings.FILTER_PANEL_TIMEOUT_SECONDS,
            filter_attempts=settings.FILTER_ATTEMPTS,
            filter_backoff=settings.FILTER_BACKOFF_SECONDS,
            filter_settle=settings.FILTER_SETTLE_SECONDS,
            load_more_scroll_pause=settings.LOAD_MORE_SCROLL_PAUSE_SECONDS,
            load_more_click_settle=settings.LOAD_MORE_CLICK_SETTLE_SECONDS,
            load_more_growth_timeout=settings.LOAD_MORE_GROWTH_TIMEOUT_SECONDS,
            load_more_between_clicks=settings.LOAD_MORE_BETWEEN_CLICKS_SECONDS,
            scroll_passes=settings.SCROLL_PASSES,
            scroll_pass_delay=settings.SCROLL_PASS_DELAY_SECONDS,
            discovery_retries=settings.DISCOVERY_RETRIES,
            discovery_retry_delay=settings.DISCOVERY_RETRY_DELAY_SECONDS,
            discovery_settle=settings.DISCOVERY_SETTLE_SECONDS,
        )

    @classmethod
    def immediate(cls) -> "FetcherTimings":
        """Zero delays, for tests and dry runs."""
        return cls(
            content_wait_timeout=0, content_settle=0, filter_panel_timeout=0,
            filter_backoff=0, filter_settle=0, load_more_scroll_pause=0,
            load_more_click_settle=0, load_more_growth_timeout=0,
            load_more_between_clicks=0, scroll_pass_delay=0,
            discovery_retry_delay=0, discovery_settle=0,
        )


@dataclass(frozen=True)
class ContentSignal:
    """Independent item-count probes; any single one can undercount."""
    item_markers: int = 0
    detail_links: int = 0
    cards: int = 0

    @property
    def estimate(self) -> int:
        return max(self.item_markers, self.detail_links, self.cards)


class CampaignActions:
    """Encapsulates campaign page actions."""

    def __init__(
        self,
        driver: WebDriver,
        helpers: SeleniumHelpers,
        selectors: CampaignSelectors,
        timings: FetcherTimings,
        log_func: Callable[[str], None] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver = driver
        self.helpers = helpers
        self.sel = selectors
        self.timings = timings
        self.log = log_func or logger.info
        self._sleep = sleep

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)

    # ========== NAVIGATION ==========

    def navigate(self, url: str) -> None:
        self.log(f"NAVIGATE: {url}")
        self.driver.get(url)

    def wait_for_content(self) -> bool:
        """Wait for a title landmark; a timeout is not fatal."""
        found = self.helpers.wait_until_or_false(
            EC.presence_of_element_located(self.sel.TITLE_LANDMARK),
            timeout=self.timings.content_wait_timeout,
        )
        if not found:
            logger.warning("⚠️ Content landmark not found in time, continuing with current page")
        self._pause(self.timings.content_settle)
        return found

    # ========== FILTERING ==========

    def _click_subcategory(self, subcategory: str) -> None:
        self.helpers.wait_for_element(*self.sel.FILTER_PANEL, timeout=self.timings.filter_panel_timeout)
        for element in self.driver.find_elements(*self.sel.SUBCATEGORY_ITEMS):
            text = (element.text or "").strip()
            value = (element.get_attribute("data-value") or "").strip()
            if subcategory in (text, value):
                self.helpers.js_click(element)
                return
        raise AutomationError(f'Subcategory "{subcategory}" not found in filter panel')

    def apply_subcategory_filter(self, subcategory: str) -> int:
        """Click the subcategory filter, retrying; returns the attempt that worked."""
        attempts = self.timings.filter_attempts
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                self._click_subcategory(subcategory)
            except Exception as e:
                last_error = e
                logger.warning(f"⚠️ Filter '{subcategory}' attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    self._pause(self.timings.filter_backoff)
                continue

            self.log(f"OK Filter applied: {subcategory} (attempt {attempt})")
            self._pause(self.timings.filter_settle)
            return attempt

        raise FilterApplicationError(subcategory, attempts, last_error)

    # ========== LOAD MORE ==========

    def content_signal(self) -> ContentSignal:
        return ContentSignal(
            item_markers=self.helpers.count(self.sel.ITEM_MARKERS),
            detail_links=self.helpers.count(self.sel.DETAIL_LINKS),
            cards=self.helpers.count(self.sel.ITEM_CARDS),
        )

    def find_load_more(self):
        return self.driver.execute_script(
            FIND_LOAD_MORE_JS,
            self.sel.LOAD_MORE_STABLE[1],
            self.sel.LOAD_MORE_CANDIDATES[1],
            self.sel.FILTER_EXPANDER_ANCESTORS,
            list(self.sel.LOAD_MORE_TEXTS),
            list(self.sel.LOAD_MORE_ARIA_TEXTS),
        )

    def click_load_more(self) -> bool:
        """Click the load-more control if there is one; ``False`` when absent."""
        button = self.find_load_more()
        if button is None:
            return False
        self.helpers.js_click(button)
        return True

    def _wait_for_growth(self, before: int) -> bool:
        return self.helpers.wait_until_or_false(
            lambda d: self.content_signal().estimate > before,
            timeout=self.timings.load_more_growth_timeout,
        )

    def load_more(self, max_clicks: int) -> int:
        """
        Reveal more items until the control disappears or ``max_clicks`` is hit.

        A click that adds nothing is logged and the loop goes on. Any other
        error ends the loop; the fetch continues with what is rendered.
        Returns the number of clicks performed.
        """
        clicks = 0
        try:
            while clicks < max_clicks:
                before = self.content_signal().estimate
                self.helpers.scroll_to_bottom()
                self._pause(self.timings.load_more_scroll_pause)

                if not self.click_load_more():
                    self.log(f"No more 'load more' control after {clicks} clicks ({before} items)")
                    return clicks

                clicks += 1
                self._pause(self.timings.load_more_click_settle)
                if self._wait_for_growth(before):
                    self.log(f"Load more #{clicks}: {self.content_signal().estimate} items")
                else:
                    logger.warning(f"⚠️ Load more #{clicks} did not add items within the wait bound")

                if clicks < max_clicks:
                    self._pause(self.timings.load_more_between_clicks)

            self.log(f"Reached load-more limit of {max_clicks} clicks")
        except Exception as e:
            logger.warning(f"⚠️ Load more interrupted after {clicks} clicks: {e}")
        return clicks

    # ========== SCROLLING ==========

    def scroll_passes(self) -> None:
        try:
            for _ in range(self.timings.scroll_passes):
                self.helpers.scroll_to_bottom()
                self._pause(self.timings.scroll_pass_delay)
            self.helpers.scroll_to_top()
        except Exception as e:
            logger.warning(f"⚠️ Scrolling failed: {e}")

    # ========== EXTRACTION ==========

    def page_source(self) -> str:
        return self.driver.page_source

    def raw_subcategories(self) -> List[str]:
        return self.driver.execute_script(
            DISCOVER_SUBCATEGORIES_JS,
            self.sel.DISCOVERY_SUBCATEGORY_ITEMS[1],
            self.sel.DEPARTMENT_LINKS[1],
        ) or []

    def discover_subcategories(self) -> List[str]:
        labels = self.raw_subcategories()
        return [label for label in labels if is_subcategory_label(label)]
