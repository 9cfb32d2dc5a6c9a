from selenium.common.exceptions import TimeoutException
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait
from selenium.webdriver.support import expected_conditions as EC
from typing import Optional, Tuple

Locator = Tuple[By, str]


class SeleniumHelpers:
    def __init__(self, driver, timeout=10):
        self.driver = driver
        self.wait = WebDriverWait(driver, timeout)

    def wait_for_element(self, by, value, timeout: Optional[float] = None):
        return self.wait_until(EC.presence_of_element_located((by, value)), timeout=timeout)

    def wait_until(self, condition, timeout: Optional[float] = None):
        """Generic wait for custom condition."""
        if timeout is None:
            return self.wait.until(condition)
        return WebDriverWait(self.driver, timeout).until(condition)

    def wait_until_or_false(self, condition, timeout: Optional[float] = None) -> bool:
        """Like ``wait_until`` but a timeout is reported as ``False``."""
        try:
            self.wait_until(condition, timeout=timeout)
            return True
        except TimeoutException:
            return False

    def count(self, locator: Locator) -> int:
        return len(self.driver.find_elements(*locator))

    def js_click(self, element) -> None:
        """Scroll the element into view and click it from the page context."""
        self.driver.execute_script(
            "arguments[0].scrollIntoView({block: 'center'}); arguments[0].click();",
            element,
        )

    def scroll_to_bottom(self) -> None:
        self.driver.execute_script("window.scrollTo(0, document.body.scrollHeight);")

    def scroll_to_top(self) -> None:
        self.driver.execute_script("window.scrollTo(0, 0);")
