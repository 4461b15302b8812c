from __future__ import annotations

import argparse
import asyncio
from contextlib import suppress
from pathlib import Path
import time
from typing import Any, Optional, Sequence

from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from edgeplex.adapters.browser.remote import RemoteBrowserFactory, cluster_url_builder
from edgeplex.adapters.config.schema import ClusterConfig
from edgeplex.adapters.container import AppContainer
from edgeplex.adapters.logging.setup import detach_console
from edgeplex.app.race_pool import RaceDelays, RacePool, RaceProgress, RaceReporter, ScrapeOutcome
from edgeplex.automation.profiles import ProfileData, ScrapeTimeouts, capture_error_screenshot, scrape_profile
from edgeplex.core.edges import split_names

PROGRESS_BAR_WIDTH = 30
DETAIL_POST_LIMIT = 6
DETAIL_TEXT_LIMIT = 65


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="edgeplex-cluster")
    parser.add_argument("--config", type=str, default=None, help="Optional config.toml path.")
    parser.add_argument("--usernames", type=str, default=None, help="Comma separated profile names to scrape.")
    parser.add_argument("--concurrency", type=int, default=None, help="Parallel attempts per profile.")
    parser.add_argument("--max-tweets", type=int, default=None, help="Maximum posts read per profile.")
    return parser


class RichRaceReporter(RaceReporter):
    def __init__(self, console: Console) -> None:
        self._console = console
        self._progress = RaceProgress(completed=0, failed=0, total=0, active_workers=0, elapsed_seconds=0.0)
        self._started_monotonic = time.monotonic()
        self._active: dict[str, tuple[str, float]] = {}
        self._live: Live | None = None

    def start(self, total: int) -> None:
        self._started_monotonic = time.monotonic()
        self._progress = RaceProgress(completed=0, failed=0, total=total, active_workers=0, elapsed_seconds=0.0)
        self._live = Live(
            console=self._console,
            get_renderable=self.render,
            refresh_per_second=4,
            transient=True,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None
        self._active.clear()

    def scrape_started(self, worker_id: str, target: str) -> None:
        self._active[worker_id] = (target, time.monotonic())

    def scrape_finished(self, worker_id: str) -> None:
        self._active.pop(worker_id, None)

    def succeeded(self, outcome: ScrapeOutcome) -> None:
        count = len(outcome.data.posts) if isinstance(outcome.data, ProfileData) else 0
        self._console.print(f"[green][{outcome.worker_id}] ✓ @{escape(outcome.target)} ({count} tweets)[/]")

    def failed(self, outcome: ScrapeOutcome) -> None:
        self._console.print(
            f"[red][{outcome.worker_id}] ✗ @{escape(outcome.target)}: {escape(outcome.error or 'unknown error')}[/]"
        )

    def note(self, message: str) -> None:
        self._console.print(message)

    def progress(self, progress: RaceProgress) -> None:
        self._progress = progress

    def render(self) -> Panel:
        progress = self._progress
        elapsed = time.monotonic() - self._started_monotonic
        filled = 0
        if progress.total:
            filled = round(progress.processed / progress.total * PROGRESS_BAR_WIDTH)
        bar = "█" * filled + "░" * (PROGRESS_BAR_WIDTH - filled)
        lines: list[Text] = [
            Text(f"Progress: [{bar}] {progress.percent:5.1f}%"),
            Text(
                f"Tasks: {progress.processed:2d}/{progress.total} │ ✅ {progress.completed:2d} │ "
                f"❌ {progress.failed:2d} │ 🔄 {len(self._active)} workers"
            ),
            Text(f"Time: {elapsed:6.1f}s"),
        ]
        dots = "." * (int(elapsed * 2) % 3 + 1)
        for worker_id, (target, started) in list(self._active.items()):
            lines.append(
                Text(f"[{worker_id}] Scraping @{target} tweet data{dots:<3} ({time.monotonic() - started:.0f}s)", style="yellow")
            )
        return Panel(Group(*lines), title="📊 Scraping Progress")


async def run(
    *,
    usernames: Sequence[str] | None = None,
    concurrency: int | None = None,
    max_tweets: int | None = None,
    config_path: str | None = None,
    console: Console | None = None,
) -> list[ScrapeOutcome]:
    console = console or Console()
    resolved_config_path = Path(config_path).expanduser() if config_path else None
    AppContainer.configure(resolved_config_path)
    logger = AppContainer.get_logger()
    detach_console(logger)
    cluster = AppContainer.get_settings().cluster
    targets = list(usernames) if usernames is not None else list(cluster.usernames)
    concurrency = concurrency or cluster.concurrency
    max_tweets = max_tweets or cluster.max_tweets

    if not targets:
        console.print("❌ No Twitter usernames provided for scraping")
        return []

    console.print("🚀 Starting Twitter cluster scraping demo")
    console.print(f"👤 Users to scrape: {len(targets)}")
    console.print(f"📝 Max tweets per user: {max_tweets}")
    console.print(f"⚡ Concurrency: {concurrency}")
    console.print(f"🌐 Region: {cluster.region}\n")

    factory = RemoteBrowserFactory(
        cluster_url_builder(cluster.server_url, cluster.api_key),
        connect_timeout_seconds=cluster.connect_timeout_seconds,
    )
    reporter = RichRaceReporter(console)
    timeouts = ScrapeTimeouts(
        navigation_seconds=cluster.navigation_timeout_seconds,
        settle_seconds=cluster.settle_seconds,
        post_wait_seconds=cluster.post_wait_timeout_seconds,
    )

    async def _scrape(browser: Any, username: str, worker_id: str) -> ProfileData:
        return await scrape_profile(
            browser,
            username,
            max_posts=max_tweets,
            screenshot_dir=cluster.screenshot_dir,
            worker_id=worker_id,
            timeouts=timeouts,
        )

    async def _diagnostic(username: str, worker_id: str) -> str:
        browser = await factory.connect()
        try:
            path = await capture_error_screenshot(
                browser,
                username,
                worker_id=worker_id,
                screenshot_dir=cluster.screenshot_dir,
                timeout_seconds=cluster.diagnostic_timeout_seconds,
            )
        finally:
            with suppress(Exception):
                await browser.close()
        reporter.note(f"[{worker_id}] 📸 Error screenshot saved: {escape(str(path))}")
        return str(path)

    pool = RacePool(
        factory,
        _scrape,
        concurrency=concurrency,
        max_retries=cluster.max_retries,
        retry_delay_seconds=cluster.retry_delay_seconds,
        diagnostic=_diagnostic,
        reporter=reporter,
        delays=_delays(cluster),
    )
    started = time.monotonic()
    reporter.start(len(dict.fromkeys(targets)))
    try:
        results = await pool.run(targets)
    finally:
        reporter.stop()
        await factory.stop()

    print_summary(console, pool.completed, pool.failed, time.monotonic() - started)
    print_results(console, results)
    return results


def print_summary(console: Console, completed: int, failed: int, elapsed_seconds: float) -> None:
    console.print(
        Panel(
            f"Summary: ✅ {completed} success │ ❌ {failed} failed │ ⏱️ {elapsed_seconds:.1f}s",
            title="🎉 Scraping Complete",
        )
    )


def print_results(console: Console, results: Sequence[ScrapeOutcome]) -> None:
    console.rule("📋 Scraping Results Details")
    for index, result in enumerate(results, start=1):
        console.print(
            f"\n┌─ [{index}] @{escape(result.target):<18} │ Worker: {result.worker_id} │ Duration: {result.duration_ms}ms",
            highlight=False,
        )
        if result.success and isinstance(result.data, ProfileData):
            _print_profile(console, result.data)
        else:
            error = result.error or "unknown error"
            suffix = "..." if len(error) > 60 else ""
            console.print("├─ ❌ Status: Failed")
            console.print(f"└─ 🚫 Error: {escape(error[:60])}{suffix}", highlight=False)
        if index < len(results):
            console.print(f"\n{'─' * 90}")
    console.rule()


def _print_profile(console: Console, data: ProfileData) -> None:
    bio = data.description or "Not retrieved"
    bio_suffix = "..." if len(data.description) > 50 else ""
    console.print("├─ ✅ Status: Success")
    console.print(f"├─ 👤 User: {escape((data.profile_name or 'Not retrieved')[:40])}", highlight=False)
    console.print(f"├─ 📝 Bio: {escape(bio[:50])}{bio_suffix}", highlight=False)
    console.print(f"├─ 👥 Followers: {data.followers or '0'} │ Following: {data.following or '0'}", highlight=False)
    console.print(f"├─ 📱 Tweets: {len(data.posts)}")
    if not data.posts:
        console.print("└─ 📭 No tweet data")
        return
    console.print(f"├─ {'─' * 75}")
    shown = data.posts[:DETAIL_POST_LIMIT]
    for post_index, post in enumerate(shown, start=1):
        is_last = post_index == len(shown)
        text = post.text.replace("\n", " ")[:DETAIL_TEXT_LIMIT]
        if len(post.text) > DETAIL_TEXT_LIMIT:
            text += "..."
        console.print(f"{'└─' if is_last else '├─'} [{post_index}] {escape(text)}", highlight=False)
        stats = f"⏰ {(post.time or 'Unknown')[:12]} │ 🔄 {post.retweets or '0'} │ ❤️ {post.likes or '0'}"
        console.print(f"{'  ' if is_last else '│'} └─ {stats}", highlight=False)
    if len(data.posts) > DETAIL_POST_LIMIT:
        console.print(f"   └─ ... {len(data.posts) - DETAIL_POST_LIMIT} more tweets not displayed")


def _delays(cluster: ClusterConfig) -> RaceDelays:
    return RaceDelays(
        success=(cluster.success_delay.min_seconds, cluster.success_delay.max_seconds),
        failure=(cluster.failure_delay.min_seconds, cluster.failure_delay.max_seconds),
        cancelled=(cluster.cancel_delay.min_seconds, cluster.cancel_delay.max_seconds),
    )


def main(argv: Optional[list[str]] = None) -> None:
    args = build_arg_parser().parse_args(argv)
    usernames = split_names(args.usernames) if args.usernames is not None else None
    try:
        asyncio.run(
            run(
                usernames=usernames,
                concurrency=args.concurrency,
                max_tweets=args.max_tweets,
                config_path=args.config,
            )
        )
    except KeyboardInterrupt:
        return


if __name__ == "__main__":
    main()
