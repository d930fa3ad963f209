from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..normalization.schema import LogRecord, NormalizedLogBatch


# Smallest increment a datetime can represent; consecutive windows are
# separated by exactly this much.
EPSILON = timedelta(microseconds=1)

Checkpoint = Optional[str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConfigEntry:
    key: str
    value: str = ''

    def isBlank(self) -> bool:
        return not (self.value or '').strip()


@dataclass(frozen=True)
class TenantGroup:
    moduleId: Any
    groupName: str
    configurations: Tuple[ConfigEntry, ...] = ()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for entry in self.configurations:
            if entry.key == key:
                return entry.value
        return default

    def missingFields(self, requiredFields: List[str]) -> List[str]:
        """
        Return the required keys that are absent or blank.

        When no keys are declared, every entry of the group is required.
        """
        if not requiredFields:
            return [entry.key for entry in self.configurations if entry.isBlank()]

        missing = []
        for key in requiredFields:
            value = self.get(key)
            if value is None or not value.strip():
                missing.append(key)
        return missing

    def isConfigured(self, requiredFields: List[str]) -> bool:
        return not self.missingFields(requiredFields)

    @classmethod
    def fromDict(cls, data: Dict[str, Any]) -> 'TenantGroup':
        entries = tuple(
            ConfigEntry(
                key=str(item.get('key') or item.get('confKey') or ''),
                value='' if item.get('confValue') is None else str(item.get('confValue'))
            )
            for item in data.get('configurations') or []
        )
        moduleId = data.get('moduleID', data.get('moduleId', data.get('id')))
        if moduleId is None:
            raise ValueError("configuration group without moduleID")
        return cls(
            moduleId=moduleId,
            groupName=str(data.get('groupName') or moduleId),
            configurations=entries
        )


@dataclass(frozen=True)
class ModuleConfiguration:
    moduleActive: bool
    groups: Tuple[TenantGroup, ...] = ()

    @classmethod
    def fromDict(cls, data: Dict[str, Any]) -> 'ModuleConfiguration':
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        if 'moduleActive' not in data:
            raise ValueError("missing 'moduleActive'")
        groups = tuple(
            TenantGroup.fromDict(group) for group in data.get('configurationGroups') or []
        )
        return cls(moduleActive=bool(data['moduleActive']), groups=groups)


@dataclass(frozen=True)
class SyncWindow:
    """
    UTC time range one cycle is responsible for.

    Both ends are inclusive: the next window starts at ``end + EPSILON``, so a
    chain of windows covers every instant exactly once.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("SyncWindow bounds must be timezone-aware")
        if self.end < self.start:
            raise ValueError(f"window end {self.end} precedes start {self.start}")

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def next(self, end: datetime) -> 'SyncWindow':
        return SyncWindow(self.end + EPSILON, end)

    @property
    def width(self) -> timedelta:
        return self.end - self.start

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()}]"


@dataclass(frozen=True)
class FetchResult:
    batches: Tuple[NormalizedLogBatch, ...] = ()
    checkpoint: Checkpoint = None

    @property
    def records(self) -> List[LogRecord]:
        return [record for batch in self.batches for record in batch.records]


class GroupOutcome(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FETCH_FAILED = "fetch_failed"
    FORWARD_FAILED = "forward_failed"


@dataclass
class GroupResult:
    group: TenantGroup
    outcome: GroupOutcome
    recordCount: int = 0
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.outcome in (GroupOutcome.FETCH_FAILED, GroupOutcome.FORWARD_FAILED)


@dataclass
class CycleResult:
    window: SyncWindow
    advanced: bool
    skipReason: Optional[str] = None
    groupResults: List[GroupResult] = field(default_factory=list)

    def byOutcome(self, outcome: GroupOutcome) -> List[GroupResult]:
        return [result for result in self.groupResults if result.outcome == outcome]
