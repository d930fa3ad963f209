# Base vendor adapter classes

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Optional, Iterator
import logging

from ..normalization.normalizer import LogNormalizer
from ..normalization.schema import NormalizedLogBatch
from ..sync.models import Checkpoint, FetchResult, SyncWindow, TenantGroup


class FetchStrategy(Enum):
    WINDOW_ONLY = "window_only"
    CURSOR = "cursor"


class VendorAdapter(ABC):
    """
    Fetch strategy for one vendor platform.

    One adapter instance serves every tenant group of the module, possibly
    from several threads at once, so per-group session state is returned by
    ``authenticate`` and handed back to the fetch methods rather than stored
    on the adapter.
    """

    moduleName: str = ''
    logType: str = ''
    strategy: FetchStrategy = FetchStrategy.WINDOW_ONLY
    checkUrl: Optional[str] = None

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        normalizer: Optional[LogNormalizer] = None
    ):
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)
        self.normalizer = normalizer or LogNormalizer()
        self.timeout = float(self.config.get('timeout', 30))

    @abstractmethod
    def getRequiredFields(self) -> List[str]:
        pass

    @abstractmethod
    def authenticate(self, group: TenantGroup) -> Any:
        """
        Establish a session for ``group``.

        Raises:
            AdapterAuthError: If the vendor rejects the credentials
        """

    @abstractmethod
    def fetch(
        self,
        window: SyncWindow,
        checkpoint: Checkpoint,
        group: TenantGroup
    ) -> FetchResult:
        """
        Fetch the group's events for ``window``.

        Errors are raised to the caller and never retried here; the next
        cycle is the retry.
        """

    def closeSession(self, session: Any) -> None:
        close = getattr(session, 'close', None)
        if callable(close):
            close()

    def isConfigured(self, group: TenantGroup) -> bool:
        return group.isConfigured(self.getRequiredFields())

    def buildBatch(self, rawEvents: List[Dict[str, Any]], group: TenantGroup) -> NormalizedLogBatch:
        return self.normalizer.buildBatch(rawEvents, self.logType, group.moduleId, group.groupName)


class WindowOnlyAdapter(VendorAdapter):
    """
    Fetches every event timestamped inside the window and ignores the
    checkpoint. A cycle that fails outright loses its window for the group.
    """

    strategy = FetchStrategy.WINDOW_ONLY
    # Vendors whose window bounds something other than event time turn this off
    filterToWindow = True

    @abstractmethod
    def fetchWindow(
        self,
        session: Any,
        window: SyncWindow,
        group: TenantGroup
    ) -> Iterator[Dict[str, Any]]:
        pass

    def fetch(
        self,
        window: SyncWindow,
        checkpoint: Checkpoint,
        group: TenantGroup
    ) -> FetchResult:
        session = self.authenticate(group)
        try:
            batch = self.buildBatch(list(self.fetchWindow(session, window, group)), group)
        finally:
            self.closeSession(session)

        if not self.filterToWindow:
            return FetchResult(batches=(batch,), checkpoint=None)

        # Vendors filter with their own boundary semantics; keep only what
        # belongs to this window
        inWindow = tuple(
            record for record in batch.records
            if record.timestamp is None or window.contains(record.timestamp)
        )
        dropped = len(batch.records) - len(inWindow)
        if dropped:
            self.logger.debug(f"Dropped {dropped} {self.logType} events outside {window} for {group.groupName}")

        batch = NormalizedLogBatch(
            groupId=batch.groupId,
            groupName=batch.groupName,
            logType=batch.logType,
            records=inWindow
        )
        return FetchResult(batches=(batch,), checkpoint=None)


@dataclass
class Page:
    items: List[Dict[str, Any]] = field(default_factory=list)
    nextCursor: Optional[str] = None
    hasMore: bool = False


class CursorAdapter(VendorAdapter):
    """
    Continues from the opaque cursor returned by the previous successful
    fetch. An empty checkpoint starts from ``window.start``.
    """

    strategy = FetchStrategy.CURSOR

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        normalizer: Optional[LogNormalizer] = None
    ):
        super().__init__(config, normalizer)
        self.maxPages = int(self.config.get('max_pages', 1000))

    @abstractmethod
    def fetchPage(
        self,
        session: Any,
        window: SyncWindow,
        cursor: Optional[str],
        group: TenantGroup
    ) -> Page:
        pass

    def fetch(
        self,
        window: SyncWindow,
        checkpoint: Checkpoint,
        group: TenantGroup
    ) -> FetchResult:
        session = self.authenticate(group)

        cursor = checkpoint or None
        items: List[Dict[str, Any]] = []

        try:
            for _ in range(self.maxPages):
                page = self.fetchPage(session, window, cursor, group)
                items.extend(page.items)

                if page.nextCursor:
                    cursor = page.nextCursor

                if not page.hasMore:
                    break

                if not page.nextCursor:
                    self.logger.warning(f"{self.moduleName} reported more events for {group.groupName} without a cursor")
                    break
            else:
                self.logger.warning(
                    f"Stopped after {self.maxPages} pages for {group.groupName}; resuming from cursor next cycle"
                )
        finally:
            self.closeSession(session)

        return FetchResult(batches=(self.buildBatch(items, group),), checkpoint=cursor)
