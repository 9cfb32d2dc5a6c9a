from dataclasses import dataclass
from selenium.webdriver.common.by import By


@dataclass(frozen=True)
class CampaignSelectors:
    """Selectors for the campaign (promotion) landing page."""

    # Content landmark
    TITLE_LANDMARK = (By.CSS_SELECTOR, "#promotionTitle, .promotion-title, h1")

    # Department / subcategory filter panel
    FILTER_PANEL = (By.ID, "department")
    SUBCATEGORY_ITEMS = (By.CSS_SELECTOR, '[data-name="departmentListSubCategoryItemText"]')
    DISCOVERY_SUBCATEGORY_ITEMS = (
        By.CSS_SELECTOR,
        '#department [name="subCategoryList"] [data-name="departmentListSubCategoryItemText"]',
    )
    DEPARTMENT_LINKS = (By.CSS_SELECTOR, '#department a[data-name="departmentListItemText"]')

    # Content-count probes
    ITEM_MARKERS = (By.CSS_SELECTOR, '[data-asin]:not([data-asin=""])')
    DETAIL_LINKS = (By.CSS_SELECTOR, 'a[href*="/dp/"]')
    ITEM_CARDS = (By.CSS_SELECTOR, '[class*="product"], [class*="item"]')

    # Load more
    LOAD_MORE_STABLE = (By.CSS_SELECTOR, "#showMore, #showMoreBtnContainer span")
    LOAD_MORE_CANDIDATES = (By.CSS_SELECTOR, 'button, a, span[role="button"], span.a-button')
    FILTER_EXPANDER_ANCESTORS = '[id*="filter"], [class*="filter"], [class*="expander-header"]'
    LOAD_MORE_TEXTS = ("mostrar mais", "show more", "ver mais")
    LOAD_MORE_ARIA_TEXTS = ("more", "mais")
