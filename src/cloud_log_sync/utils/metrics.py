from typing import Dict, Any
from collections import defaultdict, deque
from datetime import datetime, timezone
import logging
import threading


DURATION_HISTORY = 1000


class MetricsCollector:
    # Counters are updated from concurrent group tasks, so every write takes the lock

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.startTime = datetime.now(timezone.utc)

            self.cycles_completed = 0
            self.cycles_skipped = defaultdict(int)

            self.groups_succeeded = 0
            self.groups_failed = 0
            self.groups_skipped = 0

            self.records_fetched = 0
            self.records_forwarded = 0
            self.batches_forwarded = 0
            self.batches_dropped = 0

            self.errors = defaultdict(int)

            # Recent cycles only; the process runs indefinitely
            self.cycle_durations = deque(maxlen=DURATION_HISTORY)

    def recordCycleCompleted(self, durationSeconds: float) -> None:
        with self._lock:
            self.cycles_completed += 1
            self.cycle_durations.append(durationSeconds)

    def recordCycleSkipped(self, reason: str) -> None:
        with self._lock:
            self.cycles_skipped[reason] += 1

    def recordGroupSucceeded(self) -> None:
        with self._lock:
            self.groups_succeeded += 1

    def recordGroupFailed(self) -> None:
        with self._lock:
            self.groups_failed += 1

    def recordGroupSkipped(self) -> None:
        with self._lock:
            self.groups_skipped += 1

    def recordRecordsFetched(self, count: int) -> None:
        with self._lock:
            self.records_fetched += count

    def recordBatchForwarded(self, recordCount: int) -> None:
        with self._lock:
            self.batches_forwarded += 1
            self.records_forwarded += recordCount

    def recordBatchDropped(self) -> None:
        with self._lock:
            self.batches_dropped += 1

    def record_error(self, component: str) -> None:
        with self._lock:
            self.errors[component] += 1

    def getMetrics(self) -> Dict[str, Any]:
        with self._lock:
            runtimeSeconds = (datetime.now(timezone.utc) - self.startTime).total_seconds()
            durations = list(self.cycle_durations)

            return {
                'runtimeSeconds': runtimeSeconds,
                'cycles': {
                    'completed': self.cycles_completed,
                    'skipped': dict(self.cycles_skipped),
                },
                'groups': {
                    'succeeded': self.groups_succeeded,
                    'failed': self.groups_failed,
                    'skipped': self.groups_skipped,
                },
                'records': {
                    'fetched': self.records_fetched,
                    'forwarded': self.records_forwarded,
                },
                'batches': {
                    'forwarded': self.batches_forwarded,
                    'dropped': self.batches_dropped,
                },
                'errors': dict(self.errors),
                'performance': {
                    'avg_cycle_seconds': sum(durations) / len(durations) if durations else 0,
                    'max_cycle_seconds': max(durations) if durations else 0,
                }
            }

    def log_metrics(self) -> None:
        metrics = self.getMetrics()

        self.logger.info(
            f"Cycles completed: {metrics['cycles']['completed']}, "
            f"skipped: {sum(metrics['cycles']['skipped'].values())}"
        )
        self.logger.info(
            f"Groups succeeded: {metrics['groups']['succeeded']}, "
            f"failed: {metrics['groups']['failed']}, skipped: {metrics['groups']['skipped']}"
        )
        self.logger.info(
            f"Records fetched: {metrics['records']['fetched']}, "
            f"forwarded: {metrics['records']['forwarded']}, "
            f"batches dropped: {metrics['batches']['dropped']}"
        )

        if metrics['errors']:
            self.logger.warning(f"Errors: {metrics['errors']}")
