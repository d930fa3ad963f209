"""
Cycle Scheduler

Drives the repeating poll cycle of one integration module and owns the
sliding sync window.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional
import logging
import threading
import time

from ..errors import ConfigurationUnavailableError, ConnectivityError
from ..utils.connectivity import ConnectivityProber
from ..utils.logger import RateLimitedLogger
from ..utils.metrics import MetricsCollector
from .config_fetcher import ConfigurationFetcher
from .dispatcher import GroupDispatcher
from .models import EPSILON, CycleResult, GroupOutcome, SyncWindow, utcnow


class CycleScheduler:
    """
    Runs sync cycles at a fixed nominal interval.

    A cycle fixes its window, probes connectivity, fetches the module
    configuration and fans out one task per tenant group. The window only
    advances once every task has finished, and only when the configuration
    was fetched and the module is active. Group failures do not hold the
    window back.

    Cycles never overlap. When a cycle outlasts the interval the ticks that
    fell inside it are dropped except one, which fires as soon as the cycle
    ends; the window still tracks wall-clock time so no instant is skipped.
    """

    def __init__(
        self,
        moduleName: str,
        configFetcher: ConfigurationFetcher,
        dispatcher: GroupDispatcher,
        prober: Optional[ConnectivityProber] = None,
        intervalSeconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        rateLimitedLogger: Optional[RateLimitedLogger] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """
        Initialize the scheduler.

        Args:
            moduleName: Integration module name sent to the configuration service
            configFetcher: Configuration service client
            dispatcher: Per-group fan-out
            prober: Optional vendor reachability check
            intervalSeconds: Nominal cycle interval
            clock: Returns the current aware UTC time
            monotonic: Monotonic seconds used for tick timing
            rateLimitedLogger: Deduplicating logger for expected conditions
            metrics: Shared metrics collector
        """
        if intervalSeconds <= 0:
            raise ValueError(f"intervalSeconds must be positive, got {intervalSeconds}")

        self.moduleName = moduleName
        self.configFetcher = configFetcher
        self.dispatcher = dispatcher
        self.prober = prober
        self.intervalSeconds = intervalSeconds
        self.clock = clock
        self.monotonic = monotonic
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rateLimitedLogger = rateLimitedLogger or RateLimitedLogger(self.logger)
        self.metrics = metrics or MetricsCollector()

        self.windowStart: datetime = self.clock() - timedelta(seconds=intervalSeconds)
        self.droppedTicks = 0
        self._stopEvent = threading.Event()

    def runCycle(self) -> CycleResult:
        """
        Run one cycle over ``[windowStart, now]``.

        Returns:
            The cycle's window, whether it advanced, and per-group results
        """
        cycleStarted = self.monotonic()

        end = self.clock()
        if end < self.windowStart:
            self.logger.warning(f"Clock is behind window start {self.windowStart.isoformat()}; using an empty window")
            end = self.windowStart
        window = SyncWindow(self.windowStart, end)

        if self.prober is not None:
            try:
                self.prober.check()
            except ConnectivityError as e:
                self.logger.error(f"External connection failure detected: {e}")
                self.metrics.record_error('connectivity')

        self.logger.info(f"Syncing {self.moduleName} logs over {window}")

        try:
            moduleConfig = self.configFetcher.fetch(self.moduleName)
        except ConfigurationUnavailableError as e:
            self.rateLimitedLogger.info(
                f"config-unavailable:{self.moduleName}",
                "error getting configuration of the %s module: backend is not available (%s)",
                self.moduleName,
                e
            )
            return self._skip(window, 'config_unavailable')
        except Exception as e:
            self.logger.error(f"error getting configuration of the {self.moduleName} module: {e}")
            return self._skip(window, 'config_error')

        if not moduleConfig.moduleActive:
            self.logger.info(f"{self.moduleName} module is disabled, skipping cycle")
            return self._skip(window, 'module_inactive')

        results = self.dispatcher.dispatch(window, list(moduleConfig.groups))

        for result in results:
            if result.failed:
                self.logger.error(
                    f"sync for group {result.group.groupName} failed over {window} "
                    f"({result.outcome.value}); its events for this window may be lost: {result.error}"
                )

        self.windowStart = end + EPSILON
        self.metrics.recordCycleCompleted(self.monotonic() - cycleStarted)

        cycle = CycleResult(window=window, advanced=True, groupResults=results)
        self.logger.info(
            f"sync completed over {window} "
            f"({len(cycle.byOutcome(GroupOutcome.SUCCEEDED))} succeeded, "
            f"{len([r for r in results if r.failed])} failed, "
            f"{len(cycle.byOutcome(GroupOutcome.SKIPPED))} skipped), "
            f"waiting {self.intervalSeconds:g} seconds"
        )
        return cycle

    def _skip(self, window: SyncWindow, reason: str) -> CycleResult:
        self.metrics.recordCycleSkipped(reason)
        return CycleResult(window=window, advanced=False, skipReason=reason)

    def runForever(self) -> None:
        """Tick until ``stop`` is called. The first cycle runs one interval after start."""
        self.logger.info(f"Starting {self.moduleName} sync (interval: {self.intervalSeconds:g}s)")

        nextTick = self.monotonic() + self.intervalSeconds

        try:
            while not self._stopEvent.is_set():
                delay = nextTick - self.monotonic()
                if delay > 0 and self._stopEvent.wait(delay):
                    break

                try:
                    self.runCycle()
                except Exception as e:
                    self.logger.error(f"Error in sync cycle: {e}", exc_info=True)
                    self.metrics.record_error('cycle')

                self.metrics.log_metrics()
                nextTick = self._nextTick(nextTick, self.monotonic())

        finally:
            self.logger.info(f"{self.moduleName} sync stopped")

    def _nextTick(self, lastTick: float, now: float) -> float:
        nextTick = lastTick + self.intervalSeconds
        if nextTick > now:
            return nextTick

        # One overdue tick stays pending and fires immediately, the rest are dropped
        missed = int((now - nextTick) // self.intervalSeconds)
        if missed:
            self.droppedTicks += missed
            self.logger.warning(f"Cycle overran the interval, dropped {missed} tick(s)")
        return nextTick + missed * self.intervalSeconds

    def stop(self) -> None:
        self._stopEvent.set()
