from typing import Dict, Any, List, Optional, TYPE_CHECKING
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..errors import AdapterError
from ..utils.logger import RateLimitedLogger
from ..utils.metrics import MetricsCollector
from .checkpoint_store import CheckpointStore
from .models import GroupOutcome, GroupResult, SyncWindow, TenantGroup

if TYPE_CHECKING:
    from ..forwarding.forwarder import LogForwarder
    from ..ingestion.base import VendorAdapter


class GroupDispatcher:
    """
    Runs one task per tenant group and joins all of them.

    ``dispatch`` returns only after every task of the cycle has finished, so
    no task outlives the cycle and a group is never processed by two tasks
    at once. A failing group is logged and reported; it never affects the
    other groups.
    """

    def __init__(
        self,
        adapter: 'VendorAdapter',
        forwarder: 'LogForwarder',
        checkpoints: CheckpointStore,
        rateLimitedLogger: Optional[RateLimitedLogger] = None,
        metrics: Optional[MetricsCollector] = None,
        maxWorkers: Optional[int] = None
    ):
        self.adapter = adapter
        self.forwarder = forwarder
        self.checkpoints = checkpoints
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rateLimitedLogger = rateLimitedLogger or RateLimitedLogger(self.logger)
        self.metrics = metrics or MetricsCollector()
        self.maxWorkers = maxWorkers

    def dispatch(self, window: SyncWindow, groups: List[TenantGroup]) -> List[GroupResult]:
        uniqueGroups = self._uniqueGroups(groups)
        if not uniqueGroups:
            return []

        workers = len(uniqueGroups)
        if self.maxWorkers:
            workers = min(workers, self.maxWorkers)

        results: Dict[Any, GroupResult] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='sync-group') as executor:
            futures = {
                executor.submit(self.runGroup, window, group): group
                for group in uniqueGroups
            }

            for future in as_completed(futures):
                group = futures[future]
                try:
                    results[group.moduleId] = future.result()
                except Exception as e:
                    # runGroup reports its own failures; this only guards the join
                    self.logger.error(f"Sync task for {group.groupName} crashed: {e}", exc_info=True)
                    results[group.moduleId] = GroupResult(group, GroupOutcome.FETCH_FAILED, error=e)

        return [results[group.moduleId] for group in uniqueGroups]

    def runGroup(self, window: SyncWindow, group: TenantGroup) -> GroupResult:
        missing = group.missingFields(self.adapter.getRequiredFields())
        if missing:
            self.rateLimitedLogger.info(
                f"group-not-configured:{group.moduleId}",
                "program not configured yet for group: %s (missing %s)",
                group.groupName,
                ', '.join(missing)
            )
            self.metrics.recordGroupSkipped()
            return GroupResult(group, GroupOutcome.SKIPPED)

        self.logger.info(f"starting log sync for: {group.groupName} over {window}")

        checkpoint = self.checkpoints.get(group.moduleId)

        try:
            fetched = self.adapter.fetch(window, checkpoint, group)
        except AdapterError as e:
            self.logger.error(f"error fetching {self.adapter.moduleName} logs for {group.groupName}: {e}")
            self.metrics.recordGroupFailed()
            self.metrics.record_error('fetch')
            return GroupResult(group, GroupOutcome.FETCH_FAILED, error=e)
        except Exception as e:
            self.logger.error(
                f"unexpected error fetching {self.adapter.moduleName} logs for {group.groupName}: {e}",
                exc_info=True
            )
            self.metrics.recordGroupFailed()
            self.metrics.record_error('fetch')
            return GroupResult(group, GroupOutcome.FETCH_FAILED, error=e)

        self.checkpoints.set(group.moduleId, fetched.checkpoint)

        recordCount = len(fetched.records)
        self.metrics.recordRecordsFetched(recordCount)

        forwardError: Optional[Exception] = None
        for batch in fetched.batches:
            if batch.isEmpty():
                continue
            try:
                self.forwarder.send(batch)
                self.metrics.recordBatchForwarded(len(batch))
            except Exception as e:
                self.logger.error(f"dropping {len(batch)} {batch.logType} logs for {group.groupName}: {e}")
                self.metrics.recordBatchDropped()
                self.metrics.record_error('forward')
                forwardError = e

        if forwardError is not None:
            self.metrics.recordGroupFailed()
            return GroupResult(group, GroupOutcome.FORWARD_FAILED, recordCount, forwardError)

        self.metrics.recordGroupSucceeded()
        return GroupResult(group, GroupOutcome.SUCCEEDED, recordCount)

    def _uniqueGroups(self, groups: List[TenantGroup]) -> List[TenantGroup]:
        seen = set()
        unique = []
        for group in groups:
            if group.moduleId in seen:
                self.logger.warning(f"Ignoring duplicate configuration group {group.moduleId} ({group.groupName})")
                continue
            seen.add(group.moduleId)
            unique.append(group)
        return unique
