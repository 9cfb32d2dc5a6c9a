from datetime import datetime

import pytest

from harvester.errors import CampaignNotFoundError
from harvester.parsers.campaign_parser import (
    parse_campaign,
    parse_campaign_details,
    parse_campaign_id,
    parse_date_range,
    parse_discount,
    parse_item_ids,
)
from harvester.schemas.enums import DiscountType
from harvester.utils.date_utils import BRT


def test_details_join_spans_and_collapse_whitespace():
    html = """
    <div id="promotionTitle"><h1><span>Até 30%</span>  <span>off em
        Cozinha</span></h1></div>
    <div id="promotionSchedule"><span>De 1 de maio de 2025</span><span>até 5 de maio de 2025</span></div>
    """

    title, details = parse_campaign_details(html)

    assert title == "Até 30% off em Cozinha"
    assert details == "De 1 de maio de 2025 até 5 de maio de 2025"


@pytest.mark.parametrize(
    "headline, expected",
    [
        ("20% off em Casa", (DiscountType.PERCENTAGE, 20.0)),
        ("Economize 12,5 % em Livros", (DiscountType.PERCENTAGE, 12.5)),
        ("R$ 50 de desconto", (DiscountType.FIXED, 50.0)),
        ("Ofertas da semana", (DiscountType.PERCENTAGE, 0.0)),
    ],
)
def test_parse_discount(headline, expected):
    assert parse_discount(headline) == expected


def test_date_range_defaults_end_of_day():
    start, end = parse_date_range(
        "De sexta-feira 24 de outubro de 2025 às 09:00 BRT até sexta-feira 31 de outubro de 2025"
    )

    assert start == datetime(2025, 10, 24, 9, 0, tzinfo=BRT)
    assert end == datetime(2025, 10, 31, 23, 59, tzinfo=BRT)


@pytest.mark.parametrize("text", ["", "Somente hoje", "De 24 de outubro de 2025"])
def test_date_range_needs_two_dates(text):
    assert parse_date_range(text) == (None, None)


def test_unknown_month_leaves_that_date_empty():
    start, end = parse_date_range("De 24 de brumário de 2025 até 31 de outubro de 2025")

    assert start is None
    assert end == datetime(2025, 10, 31, 23, 59, tzinfo=BRT)


def test_item_ids_union_in_first_seen_order():
    html = """
    <a href="/Panela/dp/B000000003/ref=x">one</a>
    <a href="/dp/B000000003">again</a>
    <div data-asin="b000000001"></div>
    <div data-asin=""></div>
    <div data-asin="short"></div>
    <script>var data = {"asin": "B000000004"};</script>
    <div data-product-id="sku-B000000005"></div>
    """

    assert parse_item_ids(html) == ["B000000003", "B000000001", "B000000004", "B000000005"]


def test_campaign_id_sources():
    assert parse_campaign_id('<meta name="promotion-id" content="META1">') == "META1"
    assert parse_campaign_id('<script>{"promotionId": "SCRIPT2"}</script>') == "SCRIPT2"
    assert (
        parse_campaign_id('<link rel="canonical" href="https://shop.example/promotion/psp/CANON3">')
        == "CANON3"
    )
    assert parse_campaign_id("<p>nothing</p>") is None


def test_parse_campaign_requires_headline():
    with pytest.raises(CampaignNotFoundError) as exc_info:
        parse_campaign("ABC123", "<html><body></body></html>")

    assert str(exc_info.value) == "Campaign with ID ABC123 not found"


def test_parse_campaign_without_schedule_or_items():
    result = parse_campaign("ABC123", '<div id="promotionTitle"><h1><span>Ofertas</span></h1></div>')

    assert result.description == "Ofertas"
    assert result.details == ""
    assert result.start_date is None and result.end_date is None
    assert result.item_ids == []


def test_parse_campaign_rejects_page_of_another_campaign():
    page = (
        '<meta name="promotion-id" content="OTHER9">'
        '<div id="promotionTitle"><h1><span>Ofertas</span></h1></div>'
    )

    with pytest.raises(CampaignNotFoundError):
        parse_campaign("ABC123", page)

    matching = page.replace("OTHER9", "ABC123")
    assert parse_campaign("ABC123", matching).description == "Ofertas"
