import logging
from dataclasses import replace

import pytest
from selenium.common.exceptions import StaleElementReferenceException

from harvester.connectors.actions.campaign_actions import (
    DISCOVER_SUBCATEGORIES_JS,
    FIND_LOAD_MORE_JS,
    CampaignActions,
    ContentSignal,
    FetcherTimings,
    is_detached_error,
    is_subcategory_label,
)
from harvester.connectors.selectors.campaign import CampaignSelectors
from harvester.errors import AutomationError, FilterApplicationError


class FakeElement:
    def __init__(self, text, value=None):
        self.text = text
        self.value = value

    def get_attribute(self, name):
        return self.value if name == "data-value" else None


class FakePage:
    def __init__(self, items=10, buttons=0, grows=True, elements=None, labels=None):
        self.items = items
        self.buttons = buttons
        self.grows = grows
        self.elements = elements or []
        self.labels = labels or []
        self.clicked = []


class FakeDriver:
    def __init__(self, page):
        self.page = page

    def execute_script(self, script, *args):
        if script == FIND_LOAD_MORE_JS:
            return "load-more" if self.page.buttons else None
        if script == DISCOVER_SUBCATEGORIES_JS:
            return list(self.page.labels)
        return None

    def find_elements(self, by, value):
        return self.page.elements


class FakeHelpers:
    def __init__(self, page, broken=False):
        self.page = page
        self.broken = broken

    def wait_for_element(self, by, value, timeout=None):
        return object()

    def wait_until_or_false(self, condition, timeout=None):
        return bool(condition(None))

    def count(self, locator):
        return self.page.items

    def js_click(self, element):
        self.page.clicked.append(element)
        if element == "load-more":
            self.page.buttons -= 1
            if self.page.grows:
                self.page.items += 10

    def scroll_to_bottom(self):
        if self.broken:
            raise RuntimeError("target window already closed")

    def scroll_to_top(self):
        pass


def _actions(page, timings=None, broken=False):
    logs, sleeps = [], []
    actions = CampaignActions(
        FakeDriver(page),
        FakeHelpers(page, broken),
        CampaignSelectors(),
        timings or FetcherTimings.immediate(),
        log_func=logs.append,
        sleep=sleeps.append,
    )
    return actions, logs, sleeps


def test_filter_is_retried_until_it_applies():
    timings = replace(FetcherTimings.immediate(), filter_backoff=2.0)
    actions, logs, sleeps = _actions(FakePage(), timings)
    calls = []

    def flaky(subcategory):
        calls.append(subcategory)
        if len(calls) < 3:
            raise AutomationError("panel not ready")

    actions._click_subcategory = flaky

    assert actions.apply_subcategory_filter("Cozinha") == 3
    assert sleeps == [2.0, 2.0]
    assert "OK Filter applied: Cozinha (attempt 3)" in logs


def test_filter_gives_up_after_configured_attempts():
    timings = replace(FetcherTimings.immediate(), filter_backoff=2.0)
    actions, _, sleeps = _actions(FakePage(), timings)

    def broken(subcategory):
        raise AutomationError("panel not ready")

    actions._click_subcategory = broken

    with pytest.raises(FilterApplicationError) as exc_info:
        actions.apply_subcategory_filter("Cozinha")

    message = str(exc_info.value)
    assert '"Cozinha"' in message
    assert "after 3 attempts" in message
    assert exc_info.value.attempts == 3
    assert sleeps == [2.0, 2.0]


def test_click_subcategory_matches_text_or_data_value():
    page = FakePage(elements=[FakeElement("Panelas"), FakeElement("Utensílios", value="Cozinha")])
    actions, _, _ = _actions(page)

    actions._click_subcategory("Cozinha")
    assert [el.text for el in page.clicked] == ["Utensílios"]

    with pytest.raises(AutomationError):
        actions._click_subcategory("Banheiro")


def test_load_more_stops_when_control_disappears():
    page = FakePage(buttons=2)
    actions, logs, _ = _actions(page)

    assert actions.load_more(5) == 2
    assert page.items == 30
    assert any("No more 'load more' control after 2 clicks" in line for line in logs)


def test_load_more_stops_at_click_limit():
    page = FakePage(buttons=10)
    actions, logs, _ = _actions(page)

    assert actions.load_more(3) == 3
    assert page.buttons == 7
    assert "Reached load-more limit of 3 clicks" in logs


def test_click_without_growth_only_warns(caplog):
    page = FakePage(buttons=2, grows=False)
    actions, _, _ = _actions(page)

    with caplog.at_level(logging.WARNING):
        clicks = actions.load_more(5)

    assert clicks == 2
    assert "did not add items" in caplog.text


def test_load_more_errors_end_the_loop_quietly(caplog):
    actions, _, _ = _actions(FakePage(buttons=3), broken=True)

    with caplog.at_level(logging.WARNING):
        assert actions.load_more(5) == 0

    assert "Load more interrupted after 0 clicks" in caplog.text


def test_discovery_drops_navigation_noise():
    page = FakePage(labels=["Panelas", "Ver mais", "12", "Todos", "Utensílios de Cozinha", "ab"])
    actions, _, _ = _actions(page)

    assert actions.discover_subcategories() == ["Panelas", "Utensílios de Cozinha"]


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Panelas", True),
        ("Mostrar resultados", False),
        ("See more", False),
        ("Qualquer departamento", False),
        ("Departamento", False),
        ("42", False),
    ],
)
def test_is_subcategory_label(label, expected):
    assert is_subcategory_label(label) is expected


def test_detached_errors_are_recognised():
    assert is_detached_error(StaleElementReferenceException("stale"))
    assert is_detached_error(RuntimeError("Execution context was detached"))
    assert not is_detached_error(ValueError("bad selector"))


def test_content_signal_takes_the_largest_probe():
    assert ContentSignal(item_markers=12, detail_links=20, cards=7).estimate == 20
