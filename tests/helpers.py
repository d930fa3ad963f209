"""
Shared fixtures for the sync engine tests.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from cloud_log_sync.errors import AdapterFetchError, ForwardError
from cloud_log_sync.ingestion.base import CursorAdapter, Page, WindowOnlyAdapter
from cloud_log_sync.forwarding.forwarder import LogForwarder
from cloud_log_sync.sync.models import ConfigEntry, ModuleConfiguration, TenantGroup


BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now = self.now + timedelta(seconds=seconds)


def makeGroup(moduleId: Any, name: Optional[str] = None, **entries: str) -> TenantGroup:
    if not entries:
        entries = {'api_key': f"key-{moduleId}"}
    return TenantGroup(
        moduleId=moduleId,
        groupName=name or f"group-{moduleId}",
        configurations=tuple(ConfigEntry(key, value) for key, value in entries.items())
    )


class FakeConfigFetcher:

    def __init__(self, groups: Optional[List[TenantGroup]] = None, active: bool = True):
        self.groups = groups or []
        self.active = active
        self.error: Optional[Exception] = None
        self.calls = 0

    def fetch(self, moduleName: str) -> ModuleConfiguration:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ModuleConfiguration(moduleActive=self.active, groups=tuple(self.groups))


class RecordingForwarder(LogForwarder):

    def __init__(self, failFor: Optional[set] = None):
        super().__init__()
        self.batches = []
        self.failFor = failFor or set()
        self._lock = threading.Lock()

    def send(self, batch) -> None:
        if batch.groupId in self.failFor:
            raise ForwardError(f"gateway down for {batch.groupId}")
        with self._lock:
            self.batches.append(batch)

    def payloadsFor(self, groupId: Any) -> List[List[Dict[str, Any]]]:
        return [
            [record.payload for record in batch.records]
            for batch in self.batches if batch.groupId == groupId
        ]


class FixtureWindowAdapter(WindowOnlyAdapter):
    """
    Window-only adapter over an in-memory event list. Events carry
    ``timestamp`` as aware datetimes; fetchWindow returns all of them and the
    base class keeps those inside the window.
    """

    moduleName = 'fixture'
    logType = 'aws'

    def __init__(self, events: Optional[Dict[Any, List[Dict[str, Any]]]] = None, failFor: Optional[set] = None):
        super().__init__({})
        self.events = events or {}
        self.failFor = failFor or set()
        self.windows = []
        self._lock = threading.Lock()

    def getRequiredFields(self) -> List[str]:
        return []

    def authenticate(self, group: TenantGroup) -> Any:
        return None

    def fetchWindow(self, session, window, group):
        with self._lock:
            self.windows.append((group.moduleId, window))
        if group.moduleId in self.failFor:
            raise AdapterFetchError("vendor returned HTTP 500", group.groupName)
        return list(self.events.get(group.moduleId, []))


class ScriptedCursorAdapter(CursorAdapter):
    """
    Cursor adapter over a deterministic event stream: the cursor ``pN``
    points at index N-1 of the stream and each page returns ``pageSize``
    events.
    """

    moduleName = 'fixture'
    logType = 'sophos-central'

    def __init__(self, stream: List[Dict[str, Any]], pageSize: int = 2, pagesPerFetch: int = 1):
        super().__init__({'max_pages': pagesPerFetch})
        self.stream = stream
        self.pageSize = pageSize
        self.cursorsSeen = []

    def getRequiredFields(self) -> List[str]:
        return []

    def authenticate(self, group: TenantGroup) -> Any:
        return None

    def fetchPage(self, session, window, cursor, group) -> Page:
        self.cursorsSeen.append(cursor)
        index = int(cursor[1:]) - 1 if cursor else 0
        items = self.stream[index:index + self.pageSize]
        nextIndex = index + len(items)
        return Page(
            items=items,
            nextCursor=f"p{nextIndex + 1}",
            hasMore=nextIndex < len(self.stream)
        )


class MappedCursorAdapter(CursorAdapter):
    """Cursor adapter answering each cursor with a fixed page."""

    moduleName = 'fixture'
    logType = 'sophos-central'

    def __init__(self, pages: Dict[Optional[str], Page]):
        super().__init__({})
        self.pages = pages
        self.cursorsSeen = []

    def getRequiredFields(self) -> List[str]:
        return []

    def authenticate(self, group: TenantGroup) -> Any:
        return None

    def fetchPage(self, session, window, cursor, group) -> Page:
        self.cursorsSeen.append(cursor)
        return self.pages[cursor]
