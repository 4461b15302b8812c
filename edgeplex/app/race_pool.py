from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Awaitable, Callable, Protocol, Sequence

from edgeplex.core.errors import AttemptCancelledError, format_error, is_timeout_error
from edgeplex.shared.retries import AsyncRetriesService, RetryPolicy, random_delay

Scraper = Callable[[Any, str, str], Awaitable[Any]]
DiagnosticCapture = Callable[[str, str], Awaitable[str | None]]

CANCELLED_MESSAGE = "Scrape cancelled after another attempt succeeded"


class SessionConnector(Protocol):
    async def connect(self, edge_id: str | None = None) -> Any: ...


@dataclass(frozen=True)
class Task:
    target: str
    attempt: int


@dataclass
class TargetState:
    completed: bool = False
    success: bool | None = None


@dataclass(eq=False)
class BrowserHandle:
    browser: Any
    worker_id: str
    cancelled: bool = False


@dataclass
class ScrapeOutcome:
    target: str
    worker_id: str
    success: bool
    data: Any = None
    error: str | None = None
    duration_ms: int = 0
    cancelled: bool = False


@dataclass(frozen=True)
class RaceProgress:
    completed: int
    failed: int
    total: int
    active_workers: int
    elapsed_seconds: float

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.processed / self.total * 100


@dataclass(frozen=True)
class RaceDelays:
    success: tuple[float, float] = (2.0, 4.0)
    failure: tuple[float, float] = (2.0, 4.0)
    cancelled: tuple[float, float] = (0.5, 1.0)

    @classmethod
    def none(cls) -> "RaceDelays":
        return cls(success=(0.0, 0.0), failure=(0.0, 0.0), cancelled=(0.0, 0.0))


class RaceReporter:
    def connecting(self, worker_id: str) -> None:
        pass

    def scrape_started(self, worker_id: str, target: str) -> None:
        pass

    def scrape_finished(self, worker_id: str) -> None:
        pass

    def succeeded(self, outcome: ScrapeOutcome) -> None:
        pass

    def failed(self, outcome: ScrapeOutcome) -> None:
        pass

    def progress(self, progress: RaceProgress) -> None:
        pass


@dataclass
class _RaceState:
    targets: list[str] = field(default_factory=list)
    states: dict[str, TargetState] = field(default_factory=dict)
    remaining: dict[str, int] = field(default_factory=dict)
    handles: dict[str, set[BrowserHandle]] = field(default_factory=dict)


class RacePool:
    """Runs every target ``concurrency`` times in parallel; the first success wins.

    Cancellation is cooperative: losing attempts are flagged and their browsers
    closed, in-flight remote calls are not interrupted.
    """

    def __init__(
        self,
        connector: SessionConnector,
        scraper: Scraper,
        *,
        concurrency: int = 3,
        max_retries: int = 3,
        retry_delay_seconds: float = 0.0,
        diagnostic: DiagnosticCapture | None = None,
        reporter: RaceReporter | None = None,
        delays: RaceDelays | None = None,
        retries: AsyncRetriesService | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._connector = connector
        self._scraper = scraper
        self._concurrency = concurrency
        self._policy = RetryPolicy(max_attempts=max_retries + 1, base_delay_seconds=retry_delay_seconds)
        self._diagnostic = diagnostic
        self._reporter = reporter or RaceReporter()
        self._delays = delays or RaceDelays()
        self._retries = retries or AsyncRetriesService()
        self._logger = logging.getLogger("edgeplex.race_pool")
        self._state = _RaceState()
        self._started_monotonic: float | None = None
        self.results: list[ScrapeOutcome] = []
        self.completed = 0
        self.failed = 0
        self.active_workers = 0

    @property
    def progress(self) -> RaceProgress:
        elapsed = 0.0
        if self._started_monotonic is not None:
            elapsed = time.monotonic() - self._started_monotonic
        return RaceProgress(
            completed=self.completed,
            failed=self.failed,
            total=len(self._state.targets),
            active_workers=self.active_workers,
            elapsed_seconds=elapsed,
        )

    @property
    def progress_percent(self) -> float:
        return self.progress.percent

    def target_state(self, target: str) -> TargetState:
        return self._state.states[target]

    async def run(self, targets: Sequence[str]) -> list[ScrapeOutcome]:
        unique_targets = list(dict.fromkeys(target for target in targets if target))
        self._state = _RaceState(targets=unique_targets)
        self.results = []
        self.completed = 0
        self.failed = 0
        if not unique_targets:
            return []
        self._started_monotonic = time.monotonic()

        queue: deque[Task] = deque()
        for target in unique_targets:
            self._state.states[target] = TargetState()
            self._state.remaining[target] = self._concurrency
            for attempt in range(1, self._concurrency + 1):
                queue.append(Task(target=target, attempt=attempt))

        worker_count = min(self._concurrency, len(queue)) or 1
        self._logger.info(
            "starting race pool",
            extra={"targets": len(unique_targets), "tasks": len(queue), "workers": worker_count},
        )
        await asyncio.gather(*(self._process_queue(queue, index + 1) for index in range(worker_count)))
        return list(self.results)

    async def _process_queue(self, queue: deque[Task], worker_index: int) -> None:
        worker_id = f"W{worker_index:02d}"
        self.active_workers += 1
        try:
            while queue:
                task = queue.popleft()
                state = self._state.states[task.target]
                if state.completed:
                    continue

                attempt_id = f"{worker_id}-A{task.attempt}"
                self._reporter.connecting(attempt_id)
                outcome = await self._attempt_with_retry(task.target, attempt_id)

                if outcome.cancelled:
                    await random_delay(*self._delays.cancelled)
                    continue

                if outcome.success:
                    self._record_success(outcome)
                    await random_delay(*self._delays.success)
                    continue

                remaining = max(self._state.remaining[task.target] - 1, 0)
                self._state.remaining[task.target] = remaining
                if remaining == 0 and not state.completed:
                    state.completed = True
                    state.success = False
                    self.results.append(outcome)
                    self.failed += 1
                    self._reporter.failed(outcome)
                    self._reporter.progress(self.progress)
                    await self._capture_diagnostic(task.target, attempt_id)

                await random_delay(*self._delays.failure)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("worker critical error", extra={"worker_id": worker_id, "error": format_error(exc)})
        finally:
            self.active_workers -= 1

    async def _attempt_with_retry(self, target: str, worker_id: str) -> ScrapeOutcome:
        if self._state.states[target].completed:
            return _cancelled(target, worker_id)

        async def _single_try(try_number: int) -> ScrapeOutcome:
            return await self._try_once(target, worker_id, try_number)

        def _should_retry(exc: Exception) -> bool:
            return not isinstance(exc, AttemptCancelledError) and is_timeout_error(exc)

        def _on_retry(exc: Exception, try_number: int, _delay: float) -> None:
            self._logger.info(
                "retrying attempt after timeout",
                extra={"worker_id": worker_id, "target": target, "try": try_number, "error": format_error(exc)},
            )

        try:
            return await self._retries.run(
                _single_try,
                policy=self._policy,
                should_retry=_should_retry,
                on_retry=_on_retry,
            )
        except AttemptCancelledError:
            return _cancelled(target, worker_id)
        except Exception as exc:  # noqa: BLE001
            return ScrapeOutcome(target=target, worker_id=worker_id, success=False, error=format_error(exc))

    async def _try_once(self, target: str, worker_id: str, try_number: int) -> ScrapeOutcome:
        state = self._state.states[target]
        if state.completed:
            raise AttemptCancelledError(target)
        browser = await self._connector.connect()
        handle: BrowserHandle | None = None
        try:
            if state.completed:
                raise AttemptCancelledError(target)
            handle = BrowserHandle(browser=browser, worker_id=worker_id)
            self._register(target, handle)
            started = time.monotonic()
            self._reporter.scrape_started(worker_id, target)
            try:
                data = await self._scraper(browser, target, worker_id)
            except Exception as exc:
                if handle.cancelled:
                    raise AttemptCancelledError(target) from exc
                raise
            finally:
                self._reporter.scrape_finished(worker_id)
            if handle.cancelled or state.completed:
                raise AttemptCancelledError(target)
            state.completed = True
            state.success = True
            await self._abort_siblings(target, handle)
            duration_ms = int((time.monotonic() - started) * 1000)
            self._logger.debug("attempt succeeded", extra={"worker_id": worker_id, "target": target, "try": try_number})
            return ScrapeOutcome(
                target=target,
                worker_id=worker_id,
                success=True,
                data=data,
                duration_ms=duration_ms,
            )
        finally:
            await _close_browser(browser)
            if handle is not None:
                self._unregister(target, handle)

    def _record_success(self, outcome: ScrapeOutcome) -> None:
        self.results.append(outcome)
        self.completed += 1
        self._reporter.succeeded(outcome)
        self._reporter.progress(self.progress)

    async def _capture_diagnostic(self, target: str, worker_id: str) -> None:
        if self._diagnostic is None:
            return
        try:
            await self._diagnostic(target, worker_id)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "diagnostic screenshot failed",
                extra={"worker_id": worker_id, "target": target, "error": format_error(exc)},
            )

    def _register(self, target: str, handle: BrowserHandle) -> None:
        self._state.handles.setdefault(target, set()).add(handle)

    def _unregister(self, target: str, handle: BrowserHandle) -> None:
        active = self._state.handles.get(target)
        if active is None:
            return
        active.discard(handle)
        if not active:
            self._state.handles.pop(target, None)

    async def _abort_siblings(self, target: str, keep: BrowserHandle) -> None:
        active = self._state.handles.get(target)
        if not active:
            return
        losers = [handle for handle in active if handle is not keep]
        for handle in losers:
            handle.cancelled = True
        await asyncio.gather(*(self._abort(target, handle) for handle in losers))

    async def _abort(self, target: str, handle: BrowserHandle) -> None:
        try:
            await _close_browser(handle.browser)
        finally:
            self._unregister(target, handle)


def _cancelled(target: str, worker_id: str) -> ScrapeOutcome:
    return ScrapeOutcome(
        target=target,
        worker_id=worker_id,
        success=False,
        error=CANCELLED_MESSAGE,
        cancelled=True,
    )


async def _close_browser(browser: Any) -> None:
    try:
        await browser.close()
    except Exception:  # noqa: BLE001
        pass
