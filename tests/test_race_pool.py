from __future__ import annotations

import asyncio

import pytest

from edgeplex.app.race_pool import CANCELLED_MESSAGE, RaceDelays, RacePool, RaceReporter


class _FakeBrowser:
    def __init__(self, number: int) -> None:
        self.number = number
        self.closed = asyncio.Event()

    async def close(self) -> None:
        self.closed.set()


class _FakeConnector:
    def __init__(self) -> None:
        self.browsers: list[_FakeBrowser] = []

    async def connect(self, edge_id: str | None = None) -> _FakeBrowser:
        del edge_id
        await asyncio.sleep(0)
        browser = _FakeBrowser(len(self.browsers) + 1)
        self.browsers.append(browser)
        return browser


class _RecordingReporter(RaceReporter):
    def __init__(self) -> None:
        self.succeeded_targets: list[str] = []
        self.failed_targets: list[str] = []
        self.started: list[str] = []

    def scrape_started(self, worker_id: str, target: str) -> None:
        self.started.append(worker_id)

    def succeeded(self, outcome) -> None:
        self.succeeded_targets.append(outcome.target)

    def failed(self, outcome) -> None:
        self.failed_targets.append(outcome.target)


@pytest.mark.asyncio
async def test_first_success_wins_and_cancels_siblings() -> None:
    connector = _FakeConnector()
    reporter = _RecordingReporter()
    finished: list[str] = []

    async def _scrape(browser: _FakeBrowser, target: str, worker_id: str) -> dict[str, str]:
        if worker_id == "W02-A2":
            await asyncio.sleep(0.01)
            return {"target": target}
        await browser.closed.wait()
        finished.append(worker_id)
        raise RuntimeError("Target page, context or browser has been closed")

    pool = RacePool(connector, _scrape, concurrency=3, max_retries=3, reporter=reporter, delays=RaceDelays.none())

    results = await pool.run(["alice"])

    assert len(results) == 1
    assert results[0].success is True
    assert results[0].worker_id == "W02-A2"
    assert results[0].data == {"target": "alice"}
    assert pool.completed == 1
    assert pool.failed == 0
    assert sorted(finished) == ["W01-A1", "W03-A3"]
    assert len(connector.browsers) == 3
    assert all(browser.closed.is_set() for browser in connector.browsers)
    assert pool.target_state("alice").success is True
    assert reporter.succeeded_targets == ["alice"]


@pytest.mark.asyncio
async def test_timeouts_exhaust_retry_bound_and_capture_one_diagnostic() -> None:
    connector = _FakeConnector()
    reporter = _RecordingReporter()
    diagnostics: list[tuple[str, str]] = []

    async def _scrape(browser: _FakeBrowser, target: str, worker_id: str) -> None:
        del browser, target, worker_id
        raise TimeoutError("Timeout 45000ms exceeded")

    async def _diagnostic(target: str, worker_id: str) -> str:
        diagnostics.append((target, worker_id))
        return f"screenshots/error_{target}_{worker_id}.png"

    pool = RacePool(
        connector,
        _scrape,
        concurrency=3,
        max_retries=3,
        diagnostic=_diagnostic,
        reporter=reporter,
        delays=RaceDelays.none(),
    )

    results = await pool.run(["alice"])

    assert len(connector.browsers) == 3 * (3 + 1)
    assert len(reporter.started) == 12
    assert {worker_id.split("-")[1] for worker_id in reporter.started} == {"A1", "A2", "A3"}
    assert len(diagnostics) == 1
    assert diagnostics[0][0] == "alice"
    assert len(results) == 1
    assert results[0].success is False
    assert "Timeout" in (results[0].error or "")
    assert pool.completed == 0
    assert pool.failed == 1
    assert reporter.failed_targets == ["alice"]
    assert pool.progress_percent == 100.0


@pytest.mark.asyncio
async def test_non_timeout_errors_are_not_retried() -> None:
    connector = _FakeConnector()

    async def _scrape(browser: _FakeBrowser, target: str, worker_id: str) -> None:
        del browser, target, worker_id
        raise ValueError("profile suspended")

    pool = RacePool(connector, _scrape, concurrency=2, max_retries=3, delays=RaceDelays.none())

    results = await pool.run(["alice"])

    assert len(connector.browsers) == 2
    assert results[0].error == "profile suspended"
    assert pool.failed == 1


@pytest.mark.asyncio
async def test_diagnostic_failure_is_swallowed() -> None:
    async def _scrape(browser: _FakeBrowser, target: str, worker_id: str) -> None:
        del browser, target, worker_id
        raise ValueError("broken")

    async def _diagnostic(target: str, worker_id: str) -> str:
        raise RuntimeError("no browser for screenshot")

    pool = RacePool(
        _FakeConnector(),
        _scrape,
        concurrency=1,
        max_retries=0,
        diagnostic=_diagnostic,
        delays=RaceDelays.none(),
    )

    results = await pool.run(["alice"])

    assert [result.success for result in results] == [False]
    assert pool.failed == 1


@pytest.mark.asyncio
async def test_each_target_resolves_exactly_once() -> None:
    async def _scrape(browser: _FakeBrowser, target: str, worker_id: str) -> str:
        del browser, worker_id
        if target == "bob":
            raise ValueError("missing")
        return target

    pool = RacePool(_FakeConnector(), _scrape, concurrency=2, max_retries=0, delays=RaceDelays.none())

    results = await pool.run(["alice", "bob", "alice"])

    assert sorted((result.target, result.success) for result in results) == [("alice", True), ("bob", False)]
    assert pool.completed + pool.failed == 2
    assert pool.progress.total == 2


@pytest.mark.asyncio
async def test_empty_target_list_returns_nothing() -> None:
    async def _scrape(browser: _FakeBrowser, target: str, worker_id: str) -> str:
        return target

    pool = RacePool(_FakeConnector(), _scrape, delays=RaceDelays.none())

    assert await pool.run([]) == []


def test_cancelled_message_matches_cli_output() -> None:
    assert CANCELLED_MESSAGE == "Scrape cancelled after another attempt succeeded"
