"""
BeautifulSoup parsing for rendered campaign pages.

All functions are pure: HTML or text in, plain values out.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from harvester.errors import CampaignNotFoundError
from harvester.models.campaign import CampaignResult
from harvester.schemas.enums import DiscountType
from harvester.utils.date_utils import BRT

logger = logging.getLogger(__name__)

PT_MONTHS = {
    "janeiro": 1, "fevereiro": 2, "março": 3, "abril": 4, "maio": 5, "junho": 6,
    "julho": 7, "agosto": 8, "setembro": 9, "outubro": 10, "novembro": 11, "dezembro": 12,
}

PERCENTAGE_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
FIXED_RE = re.compile(r"R\$\s*(\d+(?:[.,]\d+)?)")
# "De sexta-feira 24 de outubro de 2025 às 09:00 BRT até sexta-feira 31 de outubro de 2025"
DATE_RE = re.compile(
    r"(?:De\s+)?(?:\w+-feira\s+)?(\d{1,2})\s+de\s+(\w+)\s+de\s+(\d{4})(?:\s+às\s+(\d{2}):(\d{2}))?",
    re.IGNORECASE,
)
DETAIL_LINK_RE = re.compile(r"/dp/([A-Z0-9]{10})")
ITEM_ID_RE = re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE)
SCRIPT_ITEM_RE = re.compile(r'"asin"\s*:\s*"([A-Z0-9]{10})"', re.IGNORECASE)
ATTRIBUTE_ITEM_RE = re.compile(r"([A-Z0-9]{10})", re.IGNORECASE)
SCRIPT_CAMPAIGN_ID_RE = re.compile(r'"promotionId"\s*:\s*"([A-Z0-9]+)"')
CANONICAL_CAMPAIGN_ID_RE = re.compile(r"/promotion/psp/([A-Z0-9]+)")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _joined_text(soup: BeautifulSoup, selector: str) -> str:
    text = " ".join(el.get_text(" ", strip=True) for el in soup.select(selector))
    return re.sub(r"\s+", " ", text).strip()


def parse_campaign_details(html: str) -> Tuple[str, str]:
    """Headline and schedule text; empty strings when absent."""
    soup = _soup(html)
    return _joined_text(soup, "#promotionTitle h1 span"), _joined_text(soup, "#promotionSchedule span")


def parse_discount(headline: str) -> Tuple[DiscountType, float]:
    match = PERCENTAGE_RE.search(headline or "")
    if match:
        return DiscountType.PERCENTAGE, float(match.group(1).replace(",", "."))
    match = FIXED_RE.search(headline or "")
    if match:
        return DiscountType.FIXED, float(match.group(1).replace(",", "."))
    return DiscountType.PERCENTAGE, 0.0


def _to_datetime(day: str, month_name: str, year: str, hour: int, minute: int) -> Optional[datetime]:
    month = PT_MONTHS.get(month_name.lower())
    if month is None:
        return None
    try:
        return datetime(int(year), month, int(day), hour, minute, tzinfo=BRT)
    except ValueError:
        return None


def parse_date_range(text: str) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Start and end of a Portuguese schedule line, in BRT.

    A start without a time means 00:00, an end without a time means 23:59.
    Anything other than two recognisable dates yields ``(None, None)``.
    """
    if not text:
        return None, None
    matches = list(DATE_RE.finditer(text))
    if len(matches) < 2:
        return None, None

    start, end = matches[0], matches[1]
    start_date = _to_datetime(
        start.group(1), start.group(2), start.group(3),
        int(start.group(4) or 0), int(start.group(5) or 0),
    )
    end_date = _to_datetime(
        end.group(1), end.group(2), end.group(3),
        int(end.group(4) or 23), int(end.group(5) or 59),
    )
    return start_date, end_date


def parse_item_ids(html: str) -> List[str]:
    """Union of every item-id signal on the page, in first-seen order."""
    soup = _soup(html)
    found = {}

    for link in soup.select('a[href*="/dp/"]'):
        match = DETAIL_LINK_RE.search(link.get("href", ""))
        if match:
            found.setdefault(match.group(1))

    for element in soup.select("[data-asin]"):
        value = element.get("data-asin", "")
        if ITEM_ID_RE.match(value):
            found.setdefault(value.upper())

    scripts = "".join(script.get_text() for script in soup.find_all("script"))
    for match in SCRIPT_ITEM_RE.finditer(scripts):
        found.setdefault(match.group(1).upper())

    for element in soup.select('[data-product-id], [data-product-asin], [id*="product"]'):
        value = element.get("data-product-id") or element.get("data-product-asin") or element.get("id")
        match = ATTRIBUTE_ITEM_RE.search(value or "")
        if match:
            found.setdefault(match.group(1).upper())

    logger.debug(f"Extracted {len(found)} unique item ids")
    return list(found)


def parse_campaign_id(html: str) -> Optional[str]:
    soup = _soup(html)
    meta = soup.find("meta", attrs={"name": "promotion-id"})
    if meta and meta.get("content"):
        return meta["content"]

    scripts = "".join(script.get_text() for script in soup.find_all("script"))
    match = SCRIPT_CAMPAIGN_ID_RE.search(scripts)
    if match:
        return match.group(1)

    canonical = soup.find("link", rel="canonical")
    if canonical and canonical.get("href"):
        match = CANONICAL_CAMPAIGN_ID_RE.search(canonical["href"])
        if match:
            return match.group(1)
    return None


def parse_campaign(campaign_id: str, html: str) -> CampaignResult:
    """
    Build a ``CampaignResult``.

    A page without a headline is not a campaign, and neither is one that
    declares a different campaign id (the site redirects unknown ids).
    """
    page_id = parse_campaign_id(html)
    if page_id and page_id != campaign_id:
        logger.warning(f"⚠️ Requested campaign {campaign_id} but the page is campaign {page_id}")
        raise CampaignNotFoundError(campaign_id)

    title, details = parse_campaign_details(html)
    if not title:
        raise CampaignNotFoundError(campaign_id)

    discount_type, discount_value = parse_discount(title)
    start_date, end_date = parse_date_range(details)
    return CampaignResult(
        id=campaign_id,
        description=title,
        details=details,
        discount_type=discount_type,
        discount_value=discount_value,
        start_date=start_date,
        end_date=end_date,
        item_ids=parse_item_ids(html),
    )
