from typing import Dict, Any, Optional, List, Union
from datetime import datetime, timezone
from dateutil import parser
import logging

from .schema import LogRecord, NormalizedLogBatch


class LogNormalizer:
    """
    Turns raw vendor events into LogRecords.

    Each log type names the field paths holding its event time and id. The
    first path that resolves wins. Tenant fields are stamped onto the payload
    so the pipeline can route records per group.
    """

    TIMESTAMP_FIELDS: Dict[str, List[str]] = {
        'aws': ['timestamp', 'eventTime'],
        'o365': ['CreationTime'],
        'sophos-central': ['when', 'created_at', 'raised_at'],
    }

    ID_FIELDS: Dict[str, List[str]] = {
        'aws': ['eventId', 'eventID'],
        'o365': ['Id'],
        'sophos-central': ['id'],
    }

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)
        self.addTenantFields = self.config.get('add_tenant_fields', True)

    def normalize(
        self,
        rawEvent: Dict[str, Any],
        logType: str,
        groupName: Optional[str] = None
    ) -> Optional[LogRecord]:
        try:
            payload = dict(rawEvent)
            if self.addTenantFields:
                payload['dataType'] = logType
                if groupName is not None:
                    payload['dataSource'] = groupName

            timestamp = self._firstValue(rawEvent, self.TIMESTAMP_FIELDS.get(logType, []))
            eventId = self._firstValue(rawEvent, self.ID_FIELDS.get(logType, []))

            return LogRecord(
                payload=payload,
                timestamp=self._parseEventTime(timestamp, logType),
                eventId=str(eventId) if eventId is not None else None
            )

        except Exception as e:
            self.logger.error(f"Error normalizing {logType} event: {e}", exc_info=True)
            return None

    def buildBatch(
        self,
        rawEvents: List[Dict[str, Any]],
        logType: str,
        groupId: Any,
        groupName: str
    ) -> NormalizedLogBatch:
        records = []
        for rawEvent in rawEvents:
            record = self.normalize(rawEvent, logType, groupName)
            if record is not None:
                records.append(record)
        return NormalizedLogBatch(
            groupId=groupId,
            groupName=groupName,
            logType=logType,
            records=tuple(records)
        )

    def _parseEventTime(self, value: Any, logType: str) -> Optional[datetime]:
        if value is None:
            return None
        try:
            return parseTimestamp(value)
        except (ValueError, OverflowError, TypeError) as e:
            # Keep the event; window filtering passes records without a timestamp
            self.logger.warning(f"Failed to parse {logType} timestamp '{value}': {e}")
            return None

    def _firstValue(self, data: Dict[str, Any], paths: List[str]) -> Any:
        for path in paths:
            value = self._extractNestedField(data, path)
            if value is not None:
                return value
        return None

    def _extractNestedField(self, data: Dict[str, Any], path: str) -> Any:
        value: Any = data
        for key in path.split('.'):
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return None
        return value


def parseTimestamp(value: Union[str, int, float, datetime]) -> datetime:
    """
    Parse a vendor timestamp into an aware UTC datetime.

    Integers are epoch milliseconds when they are too large to be seconds;
    strings go through dateutil (ISO 8601, RFC 1123 and similar).
    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        parsed = parser.parse(value.strip())
    else:
        raise ValueError(f"unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
