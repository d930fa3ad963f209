"""
Unit Tests for the Cycle Scheduler
"""

import logging
import threading
import unittest
from datetime import timedelta

from cloud_log_sync.errors import ConfigurationError, ConfigurationUnavailableError, ConnectivityError
from cloud_log_sync.ingestion.base import Page
from cloud_log_sync.sync.checkpoint_store import CheckpointStore
from cloud_log_sync.sync.dispatcher import GroupDispatcher
from cloud_log_sync.sync.models import EPSILON, GroupOutcome
from cloud_log_sync.sync.scheduler import CycleScheduler

from helpers import (
    BASE_TIME,
    FakeClock,
    FakeConfigFetcher,
    FixtureWindowAdapter,
    MappedCursorAdapter,
    RecordingForwarder,
    makeGroup,
)


INTERVAL = 300


def buildScheduler(adapter, groups, forwarder=None, clock=None, prober=None, checkpoints=None):
    clock = clock or FakeClock()
    forwarder = forwarder or RecordingForwarder()
    checkpoints = checkpoints if checkpoints is not None else CheckpointStore()
    fetcher = FakeConfigFetcher(groups)
    dispatcher = GroupDispatcher(adapter, forwarder, checkpoints)
    scheduler = CycleScheduler(
        moduleName='fixture',
        configFetcher=fetcher,
        dispatcher=dispatcher,
        prober=prober,
        intervalSeconds=INTERVAL,
        clock=clock
    )
    return scheduler, fetcher, forwarder, checkpoints, clock


class TestWindowProgression(unittest.TestCase):

    def testInitialWindowStartsOneIntervalBack(self):
        scheduler, *_ = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])
        self.assertEqual(scheduler.windowStart, BASE_TIME - timedelta(seconds=INTERVAL))

    def testWindowsChainWithoutGapsOrOverlap(self):
        scheduler, _, _, _, clock = buildScheduler(FixtureWindowAdapter(), [makeGroup(1), makeGroup(2)])
        firstStart = scheduler.windowStart

        windows = []
        for seconds in (300, 300, 450, 120):
            clock.advance(seconds)
            result = scheduler.runCycle()
            self.assertTrue(result.advanced)
            windows.append(result.window)

        self.assertEqual(windows[0].start, firstStart)
        self.assertEqual(windows[-1].end, clock())
        for previous, current in zip(windows, windows[1:]):
            self.assertEqual(current.start, previous.end + EPSILON)
            self.assertGreater(current.start, previous.end)

    def testConfigurationFailureKeepsWindowStart(self):
        scheduler, fetcher, _, _, clock = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])

        clock.advance(300)
        fetcher.error = ConfigurationError("HTTP 500")
        failed = scheduler.runCycle()
        self.assertFalse(failed.advanced)
        self.assertEqual(failed.skipReason, 'config_error')

        clock.advance(300)
        fetcher.error = None
        retried = scheduler.runCycle()

        self.assertTrue(retried.advanced)
        self.assertEqual(retried.window.start, failed.window.start)
        self.assertEqual(retried.window.end, clock())

    def testDisabledModuleKeepsWindowStart(self):
        adapter = FixtureWindowAdapter()
        scheduler, fetcher, _, _, clock = buildScheduler(adapter, [makeGroup(1)])
        fetcher.active = False
        start = scheduler.windowStart

        clock.advance(300)
        result = scheduler.runCycle()

        self.assertFalse(result.advanced)
        self.assertEqual(result.skipReason, 'module_inactive')
        self.assertEqual(scheduler.windowStart, start)
        self.assertEqual(adapter.windows, [])

    def testClockBehindWindowGivesEmptyWindow(self):
        scheduler, _, _, _, clock = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])
        clock.advance(300)
        first = scheduler.runCycle()

        second = scheduler.runCycle()

        self.assertEqual(second.window.start, first.window.end + EPSILON)
        self.assertEqual(second.window.width, timedelta(0))


class TestFailureIsolation(unittest.TestCase):

    def testFailedGroupKeepsCheckpointAndWindowAdvances(self):
        pages = {None: Page(items=[{'id': 'b1'}], nextCursor='b-next', hasMore=False)}

        class FailingForA(MappedCursorAdapter):
            def fetchPage(self, session, window, cursor, group):
                if group.moduleId == 'A':
                    raise ConnectionError("vendor unreachable")
                return super().fetchPage(session, window, cursor, group)

        checkpoints = CheckpointStore()
        checkpoints.set('A', 'a-previous')
        scheduler, _, forwarder, _, clock = buildScheduler(
            FailingForA(pages), [makeGroup('A'), makeGroup('B')], checkpoints=checkpoints
        )
        start = scheduler.windowStart

        clock.advance(300)
        with self.assertLogs('CycleScheduler', level='ERROR'):
            result = scheduler.runCycle()

        self.assertTrue(result.advanced)
        self.assertGreater(scheduler.windowStart, start)
        self.assertEqual(checkpoints.get('A'), 'a-previous')
        self.assertEqual(checkpoints.get('B'), 'b-next')
        outcomes = {r.group.moduleId: r.outcome for r in result.groupResults}
        self.assertEqual(outcomes, {'A': GroupOutcome.FETCH_FAILED, 'B': GroupOutcome.SUCCEEDED})
        self.assertEqual(forwarder.payloadsFor('B')[0][0]['id'], 'b1')

    def testConnectivityFailureDoesNotAbortCycle(self):
        class DownProber:
            def check(self):
                raise ConnectivityError("sts.amazonaws.com unreachable")

        scheduler, _, _, _, clock = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)], prober=DownProber())
        clock.advance(300)

        with self.assertLogs('CycleScheduler', level='ERROR') as cm:
            result = scheduler.runCycle()

        self.assertTrue(result.advanced)
        self.assertTrue(any('External connection failure' in line for line in cm.output))


class TestConfigurationErrorLogging(unittest.TestCase):

    def testUnavailableBackendLogsOnceAtInfo(self):
        scheduler, fetcher, _, _, clock = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])
        fetcher.error = ConfigurationUnavailableError("invalid character '<'")

        with self.assertLogs('CycleScheduler', level='INFO') as cm:
            for _ in range(3):
                clock.advance(300)
                result = scheduler.runCycle()
                self.assertFalse(result.advanced)
                self.assertEqual(result.skipReason, 'config_unavailable')

        unavailable = [r for r in cm.records if 'backend is not available' in r.getMessage()]
        self.assertEqual(len(unavailable), 1)
        self.assertEqual(unavailable[0].levelno, logging.INFO)
        self.assertFalse(any(r.levelno >= logging.ERROR for r in cm.records))

    def testOtherConfigurationErrorsLogAtError(self):
        scheduler, fetcher, _, _, clock = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])
        fetcher.error = RuntimeError("unexpected payload")
        clock.advance(300)

        with self.assertLogs('CycleScheduler', level='ERROR') as cm:
            result = scheduler.runCycle()

        self.assertFalse(result.advanced)
        self.assertIn('unexpected payload', cm.output[0])


class TestCycleBarrier(unittest.TestCase):

    def testCycleWaitsForSlowestGroup(self):
        release = threading.Event()
        slowStarted = threading.Event()
        finished = []

        class SlowAdapter(FixtureWindowAdapter):
            def fetchWindow(self, session, window, group):
                events = super().fetchWindow(session, window, group)
                if group.moduleId == 'slow':
                    slowStarted.set()
                    release.wait(5)
                finished.append(group.moduleId)
                return events

        adapter = SlowAdapter()
        groups = [makeGroup('slow'), makeGroup('fast-1'), makeGroup('fast-2')]
        scheduler, _, _, _, clock = buildScheduler(adapter, groups)
        start = scheduler.windowStart
        clock.advance(300)

        results = []
        runner = threading.Thread(target=lambda: results.append(scheduler.runCycle()))
        runner.start()

        self.assertTrue(slowStarted.wait(5))
        runner.join(0.2)
        self.assertTrue(runner.is_alive())
        self.assertEqual(results, [])
        self.assertEqual(scheduler.windowStart, start)

        release.set()
        runner.join(5)
        self.assertFalse(runner.is_alive())

        self.assertEqual(sorted(finished), ['fast-1', 'fast-2', 'slow'])
        self.assertEqual(len(results[0].groupResults), 3)
        windows = {window for _, window in adapter.windows}
        self.assertEqual(windows, {results[0].window})


class TestEndToEnd(unittest.TestCase):

    def testWindowOnlyRecordsLandInTheirWindow(self):
        start = BASE_TIME - timedelta(seconds=INTERVAL)
        events = {
            7: [
                {'eventId': 't1', 'timestamp': start + timedelta(seconds=1)},
                {'eventId': 't2', 'timestamp': start + timedelta(seconds=400)},
            ]
        }
        adapter = FixtureWindowAdapter(events)
        scheduler, _, forwarder, _, clock = buildScheduler(adapter, [makeGroup(7)])

        # Clock still at BASE_TIME: the first window is exactly 300s wide
        first = scheduler.runCycle()
        self.assertEqual(first.window.start, start)
        self.assertEqual(first.window.end, start + timedelta(seconds=300))

        clock.advance(300)
        second = scheduler.runCycle()
        self.assertEqual(second.window.start, start + timedelta(seconds=300) + EPSILON)

        batches = forwarder.payloadsFor(7)
        self.assertEqual([[p['eventId'] for p in batch] for batch in batches], [['t1'], ['t2']])

    def testCursorCheckpointAcrossCycles(self):
        pages = {
            None: Page(items=[{'id': 'e1'}, {'id': 'e2'}], nextCursor='p2', hasMore=False),
            'p2': Page(items=[{'id': 'e3'}], nextCursor='p3', hasMore=False),
        }
        adapter = MappedCursorAdapter(pages)
        scheduler, _, forwarder, checkpoints, clock = buildScheduler(adapter, [makeGroup(3)])

        clock.advance(300)
        scheduler.runCycle()
        self.assertEqual(checkpoints.get(3), 'p2')

        clock.advance(300)
        scheduler.runCycle()

        self.assertEqual(checkpoints.get(3), 'p3')
        self.assertEqual(adapter.cursorsSeen, [None, 'p2'])
        batches = forwarder.payloadsFor(3)
        self.assertEqual([[p['id'] for p in batch] for batch in batches], [['e1', 'e2'], ['e3']])


class TestTicker(unittest.TestCase):

    def setUp(self):
        self.scheduler, *_ = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])

    def testOnTimeCycleKeepsCadence(self):
        self.assertEqual(self.scheduler._nextTick(300.0, 420.0), 600.0)
        self.assertEqual(self.scheduler.droppedTicks, 0)

    def testOverrunDropsMissedTicks(self):
        # Ticks at 600 and 900 passed during the cycle; one fires now, one is dropped
        with self.assertLogs('CycleScheduler', level='WARNING'):
            nextTick = self.scheduler._nextTick(300.0, 950.0)

        self.assertEqual(nextTick, 900.0)
        self.assertEqual(self.scheduler.droppedTicks, 1)

    def testRunForeverStopsWhenAsked(self):
        scheduler, fetcher, *_ = buildScheduler(FixtureWindowAdapter(), [makeGroup(1)])
        scheduler.intervalSeconds = 0.01
        original = fetcher.fetch

        def fetchAndStop(moduleName):
            if fetcher.calls >= 2:
                scheduler.stop()
            return original(moduleName)

        fetcher.fetch = fetchAndStop

        runner = threading.Thread(target=scheduler.runForever)
        runner.start()
        runner.join(5)

        self.assertFalse(runner.is_alive())
        self.assertEqual(fetcher.calls, 3)

    def testRejectsNonPositiveInterval(self):
        with self.assertRaises(ValueError):
            CycleScheduler('fixture', FakeConfigFetcher(), None, intervalSeconds=0)


if __name__ == '__main__':
    unittest.main()
