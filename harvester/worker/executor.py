import logging
import json

from selenium import webdriver
from selenium.webdriver.chrome.options import Options

from harvester.config import settings
from harvester.connectors.fingerprint import BrowserFingerprint, FingerprintRotator

logger = logging.getLogger(__name__)

_rotator = FingerprintRotator()


class SeleniumExecutor:
    """
    Manages the lifecycle of a Selenium WebDriver instance.
    - Local: headless Chrome driven by Selenium Manager
    - Remote: Selenium Grid when SELENIUM_REMOTE_URL is set
    """
    def __init__(self, remote_url: str = None, headless: bool = None, fingerprint: BrowserFingerprint = None):
        self.driver = None
        self.remote_url = remote_url if remote_url is not None else settings.SELENIUM_REMOTE_URL
        self.headless = settings.HEADLESS if headless is None else headless
        self.fingerprint = fingerprint or _rotator.next()

    def _build_options(self) -> Options:
        chrome_options = Options()
        # Pages keep background requests alive; DOMContentLoaded is enough.
        chrome_options.page_load_strategy = "eager"
        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--disable-gpu")
        chrome_options.add_argument(self.fingerprint.window_size_arg)
        chrome_options.add_argument("--disable-blink-features=AutomationControlled")
        chrome_options.add_argument("--disable-infobars")
        chrome_options.add_argument("--lang=pt-BR,pt")
        chrome_options.add_argument(f"--user-agent={self.fingerprint.user_agent}")
        if self.headless:
            chrome_options.add_argument("--headless=new")

        chrome_options.add_experimental_option("prefs", {
            "credentials_enable_service": False,
            "profile.password_manager_enabled": False,
            "profile.default_content_settings.popups": 0,
        })
        chrome_options.add_experimental_option("excludeSwitches", ["enable-automation"])
        chrome_options.add_experimental_option("useAutomationExtension", False)
        return chrome_options

    def start(self):
        """Initializes the webdriver connection based on mode."""
        if self.driver:
            return

        chrome_options = self._build_options()
        try:
            if self.remote_url:
                logger.info(f"🔌 Initializing Driver (REMOTE Mode at {self.remote_url})...")
                self.driver = webdriver.Remote(command_executor=self.remote_url, options=chrome_options)
            else:
                logger.info("🔌 Initializing Driver (LOCAL headless Chrome)...")
                self.driver = webdriver.Chrome(options=chrome_options)
        except Exception as e:
            logger.error(f"❌ Failed to start webdriver: {e}")
            raise

        self.driver.set_page_load_timeout(settings.PAGE_LOAD_TIMEOUT_SECONDS)
        self._apply_fingerprint()
        logger.info(f"✅ Created driver session: {self.driver.session_id}")

    def _apply_fingerprint(self) -> None:
        """Header and navigator shaping through CDP; best-effort."""
        headers_ok = self._execute_cdp_command("Network.enable", {}) and self._execute_cdp_command(
            "Network.setExtraHTTPHeaders", {"headers": self.fingerprint.headers}
        )
        script_ok = self._execute_cdp_command(
            "Page.addScriptToEvaluateOnNewDocument",
            {
                "source": (
                    "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
                    f"Object.defineProperty(navigator, 'platform', {{get: () => {json.dumps(self.fingerprint.platform)}}});"
                )
            },
        )
        if not (headers_ok and script_ok):
            logger.warning(
                "Fingerprint shaping incomplete (headers=%s, navigator=%s)", headers_ok, script_ok
            )

    def _execute_cdp_command(self, cmd: str, params: dict) -> bool:
        """Execute CDP command across local and remote driver implementations."""
        if not self.driver:
            return False

        # Local Chrome and some Selenium bindings expose execute_cdp_cmd directly.
        try:
            execute_cdp = getattr(self.driver, "execute_cdp_cmd", None)
            if callable(execute_cdp):
                execute_cdp(cmd, params)
                return True
        except Exception as e:
            logger.debug("CDP via execute_cdp_cmd failed for %s: %s", cmd, e)

        # RemoteWebDriver may only support the generic command executor API.
        try:
            execute = getattr(self.driver, "execute", None)
            command_executor = getattr(self.driver, "command_executor", None)
            if callable(execute) and command_executor is not None:
                commands = getattr(command_executor, "_commands", None)
                if isinstance(commands, dict):
                    commands.setdefault(
                        "executeCdpCommand",
                        ("POST", "/session/$sessionId/goog/cdp/execute"),
                    )
                execute("executeCdpCommand", {"cmd": cmd, "params": params})
                return True
        except Exception as e:
            logger.debug("CDP via execute() failed for %s: %s", cmd, e)

        return False

    def stop(self):
        """Quits the webdriver session; safe to call more than once."""
        if self.driver:
            try:
                logger.info("🛑 Quitting webdriver session...")
                self.driver.quit()
            except Exception as e:
                logger.warning(f"Error quitting driver: {e}")
            finally:
                self.driver = None
