import random
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

from harvester.connectors.fingerprint import (
    ACCEPT_LANGUAGES,
    USER_AGENTS,
    VIEWPORTS,
    FingerprintRotator,
    platform_for,
)
from harvester.worker.executor import SeleniumExecutor


def test_user_agents_rotate_round_robin():
    rotator = FingerprintRotator(rng=random.Random(7), referer="https://shop.example/")

    seen = [rotator.next_user_agent() for _ in range(len(USER_AGENTS) + 1)]

    assert seen[: len(USER_AGENTS)] == list(USER_AGENTS)
    assert seen[-1] == USER_AGENTS[0]


def test_fingerprint_is_internally_consistent():
    rotator = FingerprintRotator(rng=random.Random(7), referer="https://shop.example/")

    fingerprint = rotator.next()

    assert fingerprint.viewport in VIEWPORTS
    assert fingerprint.headers["Accept-Language"] in ACCEPT_LANGUAGES
    assert fingerprint.headers["Referer"] == "https://shop.example/"
    width, height = fingerprint.viewport
    assert fingerprint.window_size_arg == f"--window-size={width},{height}"
    assert fingerprint.platform == platform_for(fingerprint.user_agent)


def test_platform_follows_user_agent():
    assert platform_for("Mozilla/5.0 (Windows NT 10.0; Win64; x64)") == "Win32"
    assert platform_for("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)") == "MacIntel"
    assert platform_for("Mozilla/5.0 (X11; Linux x86_64)") == "Linux x86_64"


def test_executor_options_carry_the_fingerprint():
    fingerprint = FingerprintRotator(rng=random.Random(1), referer="https://shop.example/").next()
    executor = SeleniumExecutor(remote_url="", headless=True, fingerprint=fingerprint)

    arguments = executor._build_options().arguments

    assert f"--user-agent={fingerprint.user_agent}" in arguments
    assert fingerprint.window_size_arg in arguments
    assert "--headless=new" in arguments


def test_stop_without_start_is_a_no_op():
    executor = SeleniumExecutor(remote_url="", headless=True)
    executor.stop()
    executor.stop()
    assert executor.driver is None


def test_rotation_is_even_across_threads():
    rotator = FingerprintRotator(rng=random.Random(7), referer="https://shop.example/")
    rounds = 10

    with ThreadPoolExecutor(max_workers=8) as pool:
        seen = list(pool.map(lambda _: rotator.next_user_agent(), range(len(USER_AGENTS) * rounds)))

    assert Counter(seen) == {user_agent: rounds for user_agent in USER_AGENTS}
