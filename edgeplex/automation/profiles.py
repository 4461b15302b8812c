from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any

from edgeplex.automation.extractors import AttributeText, SelectorText, extract_or_empty, first_non_empty

POST_SELECTOR = '[data-testid="tweet"]'

PROFILE_NAME = first_non_empty(
    SelectorText('[data-testid="UserName"] span'),
    SelectorText('h2[role="heading"] span'),
    max_chars=100,
)
PROFILE_BIO = first_non_empty(
    SelectorText('[data-testid="UserDescription"]'),
    SelectorText('[role="presentation"] + div span'),
    max_chars=200,
)
FOLLOWERS = first_non_empty(
    SelectorText('[href$="/verified_followers"] span, [href$="/followers"] span'),
    SelectorText('a[role="link"] span:has-text("Followers")'),
)
FOLLOWING = SelectorText('[href$="/following"] span')
POST_TEXT = first_non_empty(
    SelectorText('[data-testid="tweetText"]'),
    SelectorText("[lang]"),
    max_chars=280,
)
POST_TIME = first_non_empty(
    SelectorText("time"),
    AttributeText("time", "datetime"),
    SelectorText("[datetime]"),
)
POST_RETWEETS = first_non_empty(
    SelectorText('[data-testid="retweet"] span'),
    SelectorText('[aria-label*="retweet"]'),
)
POST_LIKES = first_non_empty(
    SelectorText('[data-testid="like"] span'),
    SelectorText('[aria-label*="like"]'),
)

_logger = logging.getLogger("edgeplex.automation.profiles")


@dataclass(frozen=True)
class PostData:
    text: str
    time: str = ""
    retweets: str = ""
    likes: str = ""


@dataclass
class ProfileData:
    profile_name: str = ""
    description: str = ""
    followers: str = ""
    following: str = ""
    posts: list[PostData] = field(default_factory=list)


@dataclass(frozen=True)
class ScrapeTimeouts:
    navigation_seconds: float = 45
    settle_seconds: float = 5
    post_wait_seconds: float = 35


async def scrape_profile(
    browser: Any,
    username: str,
    *,
    max_posts: int = 100,
    screenshot_dir: str | Path = "screenshots",
    worker_id: str = "W01",
    base_url: str = "https://x.com",
    timeouts: ScrapeTimeouts | None = None,
) -> ProfileData:
    timeouts = timeouts or ScrapeTimeouts()
    page = await browser.new_page()
    await page.goto(
        f"{base_url.rstrip('/')}/{username}",
        timeout=timeouts.navigation_seconds * 1000,
        wait_until="domcontentloaded",
    )
    await page.wait_for_timeout(timeouts.settle_seconds * 1000)
    try:
        await page.wait_for_selector(POST_SELECTOR, timeout=timeouts.post_wait_seconds * 1000)
    except Exception:  # noqa: BLE001
        _logger.debug("no posts rendered before timeout", extra={"username": username, "worker_id": worker_id})

    profile = await read_profile(page, max_posts=max_posts)
    if not profile.posts:
        path = screenshot_path(screenshot_dir, "debug", username, worker_id)
        await page.screenshot(path=str(path), full_page=True)
        _logger.warning("0 posts found, screenshot saved", extra={"worker_id": worker_id, "path": str(path)})
    return profile


async def read_profile(page: Any, *, max_posts: int) -> ProfileData:
    profile = ProfileData(
        profile_name=await extract_or_empty(PROFILE_NAME, page),
        description=await extract_or_empty(PROFILE_BIO, page),
        followers=await extract_or_empty(FOLLOWERS, page),
        following=await extract_or_empty(FOLLOWING, page),
    )
    elements = await page.query_selector_all(POST_SELECTOR)
    for element in elements[:max_posts]:
        text = await extract_or_empty(POST_TEXT, element)
        if not text:
            continue
        profile.posts.append(
            PostData(
                text=text,
                time=await extract_or_empty(POST_TIME, element),
                retweets=await extract_or_empty(POST_RETWEETS, element),
                likes=await extract_or_empty(POST_LIKES, element),
            )
        )
    return profile


async def capture_error_screenshot(
    browser: Any,
    username: str,
    *,
    worker_id: str,
    screenshot_dir: str | Path = "screenshots",
    base_url: str = "https://x.com",
    timeout_seconds: float = 10,
) -> Path:
    page = await browser.new_page()
    try:
        await page.goto(f"{base_url.rstrip('/')}/{username}", timeout=timeout_seconds * 1000)
        path = screenshot_path(screenshot_dir, "error", username, worker_id)
        await page.screenshot(path=str(path), full_page=True)
        _logger.info("error screenshot saved", extra={"worker_id": worker_id, "path": str(path)})
        return path
    finally:
        await page.close()


def screenshot_path(directory: str | Path, kind: str, username: str, worker_id: str) -> Path:
    root = Path(directory)
    root.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")
    return root / f"{kind}_{username}_{worker_id}_{timestamp}.png"
