"""
Best-effort browser fingerprint shaping: user agent, platform, viewport and
request headers vary between sessions.
"""

import random
import threading
from dataclasses import dataclass, field
from typing import Dict, Tuple

from harvester.config import settings

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
)

ACCEPT_LANGUAGES = (
    "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
    "pt-BR,pt;q=0.9,en;q=0.8",
    "pt-BR,pt;q=0.9",
)

VIEWPORTS = (
    (1920, 1080),
    (1366, 768),
    (1440, 900),
    (1536, 864),
)


def platform_for(user_agent: str) -> str:
    """``navigator.platform`` value consistent with the user agent."""
    if "Windows" in user_agent:
        return "Win32"
    if "Macintosh" in user_agent:
        return "MacIntel"
    if "Linux" in user_agent:
        return "Linux x86_64"
    return "Win32"


@dataclass(frozen=True)
class BrowserFingerprint:
    user_agent: str
    viewport: Tuple[int, int]
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def platform(self) -> str:
        return platform_for(self.user_agent)

    @property
    def window_size_arg(self) -> str:
        width, height = self.viewport
        return f"--window-size={width},{height}"


class FingerprintRotator:
    """User agents rotate round-robin; language and viewport are picked at random."""

    def __init__(self, rng: random.Random = None, referer: str = None):
        self._rng = rng or random.Random()
        self._index = 0
        self._lock = threading.Lock()
        self.referer = referer or settings.REFERER

    def next_user_agent(self) -> str:
        with self._lock:
            user_agent = USER_AGENTS[self._index]
            self._index = (self._index + 1) % len(USER_AGENTS)
        return user_agent

    def headers(self) -> Dict[str, str]:
        return {
            "Accept-Language": self._rng.choice(ACCEPT_LANGUAGES),
            "Referer": self.referer,
        }

    def next(self) -> BrowserFingerprint:
        return BrowserFingerprint(
            user_agent=self.next_user_agent(),
            viewport=self._rng.choice(VIEWPORTS),
            headers=self.headers(),
        )
