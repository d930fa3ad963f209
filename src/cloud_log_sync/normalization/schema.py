from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple, List
from datetime import datetime
import json


@dataclass(frozen=True)
class LogRecord:
    # Vendor-agnostic log line
    payload: Dict[str, Any]
    timestamp: Optional[datetime] = None
    eventId: Optional[str] = None

    def toLine(self) -> str:
        return json.dumps(self.payload, default=_jsonDefault, separators=(',', ':'))


@dataclass(frozen=True)
class NormalizedLogBatch:
    groupId: Any
    groupName: str
    logType: str
    records: Tuple[LogRecord, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any sequence but store a tuple so the batch stays immutable
        if not isinstance(self.records, tuple):
            object.__setattr__(self, 'records', tuple(self.records))

    def __len__(self) -> int:
        return len(self.records)

    def isEmpty(self) -> bool:
        return not self.records

    def lines(self) -> List[str]:
        return [record.toLine() for record in self.records]

    def validate(self) -> bool:
        if self.groupId is None:
            raise ValueError("groupId is required")

        if not self.logType:
            raise ValueError("logType is required")

        return True


def _jsonDefault(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)
