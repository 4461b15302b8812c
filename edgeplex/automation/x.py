from __future__ import annotations

import logging
from random import uniform
from typing import Any

from edgeplex.adapters.config.schema import XAccountConfig
from edgeplex.automation.extractors import first_successful

POST_SELECTOR = 'article[data-testid="tweet"]'
POST_TEXT_SELECTOR = 'div[data-testid="tweetText"]'
PINNED_SELECTOR = "text=Pinned"
LOGIN_LINK_SELECTOR = 'a[href="/login"]'
USERNAME_INPUT_SELECTOR = 'input[autocomplete="username"]'
PASSWORD_INPUT_SELECTOR = 'input[autocomplete="current-password"]'
COMPOSER_SELECTOR = '[data-testid="tweetTextarea_0"]'
TYPEAHEAD_SELECTOR = 'div[data-testid="typeaheadResult"]'
SUBMIT_SELECTOR = '[data-testid="tweetButtonInline"]'
LOGGED_IN_SELECTORS = (
    '[data-testid="tweetButton"], [data-testid="SideNav_NewTweet_Button"]',
    '[data-testid="AppTabBar_Profile_Link"]',
)
VERIFICATION_PROMPT = "text=Enter your phone number or username"

_DOM_TEXT_CLICK_SCRIPT = """(text) => {
  const element = Array.from(document.querySelectorAll('*')).find(
    (el) => el.textContent && el.textContent.trim() === text
  );
  if (!element) {
    throw new Error(`Element with text "${text}" not found`);
  }
  element.click();
}"""

_logger = logging.getLogger("edgeplex.automation.x")


async def latest_post_text(
    page: Any,
    username: str,
    *,
    base_url: str = "https://x.com",
    timeout_seconds: float = 60,
) -> str | None:
    """Opens a profile, enters its newest non-pinned post and returns the post text."""
    timeout_ms = timeout_seconds * 1000
    await page.goto(f"{base_url.rstrip('/')}/{username}", wait_until="domcontentloaded", timeout=timeout_ms)
    await page.wait_for_selector(POST_SELECTOR, timeout=timeout_ms)
    await simulate_scroll(page, 2, 215)

    posts = await page.locator(POST_SELECTOR).all()
    if not posts:
        raise RuntimeError(f"no posts found for {username}")

    content = None
    for post in posts:
        if await post.locator(PINNED_SELECTOR).count() > 0:
            continue
        texts = await post.locator(POST_TEXT_SELECTOR).all()
        if texts:
            content = texts[0]
            break
    if content is None:
        content = posts[0].locator(POST_TEXT_SELECTOR).first

    await content.click(force=True)
    await page.wait_for_selector(POST_SELECTOR)
    await page.wait_for_timeout(uniform(100, 150))
    return await page.locator(POST_SELECTOR).first.locator(POST_TEXT_SELECTOR).first.text_content()


async def send_post(page: Any, account: XAccountConfig, text: str, *, timeout_seconds: float = 60) -> None:
    base_url = account.base_url.rstrip("/")
    await page.context.clear_cookies(domain=_cookie_domain(base_url))
    await page.goto(base_url, wait_until="domcontentloaded", timeout=timeout_seconds * 1000)

    if not await is_logged_in(page):
        _logger.info("not logged in, starting login flow")
        await log_in(page, account)
    await page.wait_for_timeout(1000)

    try:
        await page.wait_for_selector(COMPOSER_SELECTOR, timeout=10000)
    except Exception:  # noqa: BLE001
        _logger.warning("composer not ready, reloading page")
        await page.reload(wait_until="domcontentloaded")

    composer = page.locator(COMPOSER_SELECTOR)
    await composer.click()
    await page.wait_for_timeout(500)
    await composer.fill(text)
    await page.wait_for_timeout(500)

    suggestions = page.locator(TYPEAHEAD_SELECTOR)
    if await suggestions.count() > 0:
        await suggestions.first.click()
        await page.wait_for_timeout(uniform(100, 200))

    await page.locator(SUBMIT_SELECTOR).click()
    await page.wait_for_timeout(2000)
    _logger.info("post submitted")


async def is_logged_in(page: Any) -> bool:
    await page.wait_for_timeout(2000)
    try:
        if await page.locator(LOGIN_LINK_SELECTOR).count() > 0:
            return False
        for selector in LOGGED_IN_SELECTORS:
            if await page.locator(selector).count() > 0:
                return True
        return False
    except Exception:  # noqa: BLE001
        return False


async def log_in(page: Any, account: XAccountConfig) -> None:
    if not account.email or not account.password:
        raise ValueError("account email and password are required to log in")
    await page.locator(LOGIN_LINK_SELECTOR).click()
    await page.wait_for_selector(USERNAME_INPUT_SELECTOR, timeout=10000)
    await page.locator(USERNAME_INPUT_SELECTOR).fill(account.email)
    await click_button_with_text(page, "Next")

    await handle_extra_verification(page, account.username)
    try:
        await page.wait_for_selector(PASSWORD_INPUT_SELECTOR, timeout=10000)
    except Exception:  # noqa: BLE001
        await handle_extra_verification(page, account.username)
        await page.wait_for_selector(PASSWORD_INPUT_SELECTOR, timeout=10000)

    await page.locator(PASSWORD_INPUT_SELECTOR).fill(account.password)
    await click_button_with_text(page, "Log in")
    try:
        await page.wait_for_load_state("domcontentloaded", timeout=30000)
    except Exception:  # noqa: BLE001
        _logger.debug("no navigation after login")
    await page.wait_for_timeout(5000)


async def handle_extra_verification(page: Any, username: str | None) -> bool:
    """Answers the "phone number or username" challenge when it shows up."""
    try:
        if await page.locator(VERIFICATION_PROMPT).count() == 0:
            return False
        if not username:
            _logger.warning("verification step requested but no username configured")
            return False
        await page.locator("input").first.fill(username)
        await click_button_with_text(page, "Next")
        await page.wait_for_timeout(2000)
        return True
    except Exception as exc:  # noqa: BLE001
        _logger.debug("verification step failed", extra={"error": str(exc)})
        return False


async def click_button_with_text(page: Any, text: str) -> str:
    strategies = [
        ("role_button", lambda: page.locator(f'button[role="button"][type="button"]:has-text("{text}")').click()),
        ("button", lambda: page.locator(f'button:has-text("{text}")').click()),
        ("text_locator", lambda: page.locator(f"text={text}").click(force=True)),
        ("dom_scan", lambda: page.evaluate(_DOM_TEXT_CLICK_SCRIPT, text)),
    ]
    used = await first_successful(strategies)
    if used is None:
        raise RuntimeError(f'Element with text "{text}" not found')
    return used


async def simulate_scroll(page: Any, count: int, distance: int) -> None:
    for _ in range(count):
        await page.evaluate("(distance) => window.scrollBy(0, distance)", distance)
        await page.wait_for_timeout(uniform(100, 200))


def _cookie_domain(base_url: str) -> str:
    host = base_url.split("://", 1)[-1]
    return host.split("/", 1)[0]
