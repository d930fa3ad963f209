import logging
import sys
import threading
import time
from pathlib import Path
from typing import Dict, Any, Callable, List, Optional
import json
from datetime import datetime, timezone


# Chatty client libraries held at WARNING unless logging.quiet says otherwise
DEFAULT_QUIET_LOGGERS = ['boto3', 'botocore', 'urllib3', 'azure']


class JSONFormatter(logging.Formatter):
    """One JSON object per line, stamped with the record's own creation time."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'time': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'msg': record.getMessage(),
            'caller': f"{record.module}.{record.funcName}:{record.lineno}",
        }

        # Set by RateLimitedLogger
        condition = getattr(record, 'condition', None)
        if condition:
            entry['condition'] = condition

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):

    def __init__(self):
        # Group tasks run on sync-group_N threads; the thread name tells them apart
        super().__init__(
            fmt='%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%dT%H:%M:%S%z'
        )


def setupLogging(config: Dict[str, Any]) -> None:
    """
    Configure the root logger from the ``logging`` section.

    Keys: ``level``, ``format`` (json or text), ``output`` (stdout, file or
    both), ``file_path`` and ``quiet`` (logger names held at WARNING).
    """
    options = config.get('logging', {}) or {}

    level = getattr(logging, str(options.get('level', 'INFO')).upper(), logging.INFO)
    formatter = JSONFormatter() if options.get('format', 'text') == 'json' else TextFormatter()
    output = options.get('output', 'stdout')

    handlers: List[logging.Handler] = []
    if output in ('file', 'both'):
        logPath = Path(options.get('file_path', 'logs/cloud_log_sync.log'))
        logPath.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logPath))
    if output in ('stdout', 'both'):
        handlers.append(logging.StreamHandler(sys.stdout))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in options.get('quiet') or DEFAULT_QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging configured (level={logging.getLevelName(level)}, format={options.get('format', 'text')}, output={output})")


class RateLimitedLogger:
    """
    Logs a condition at most once per cooldown.

    Conditions are keyed by a stable string such as
    ``group-not-configured:42``. The first occurrence is logged; repeats
    inside the cooldown are counted and the count is reported with the next
    emitted message.
    """

    def __init__(
        self,
        logger: logging.Logger,
        cooldownSeconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.logger = logger
        self.cooldownSeconds = cooldownSeconds
        self.clock = clock
        self._lastEmitted: Dict[str, float] = {}
        self._suppressed: Dict[str, int] = {}
        self._lock = threading.Lock()

    def log(self, conditionId: str, level: int, msg: str, *args: Any) -> bool:
        """
        Log ``msg`` unless ``conditionId`` was logged within the cooldown.

        Returns:
            True if the message was emitted
        """
        now = self.clock()
        with self._lock:
            last = self._lastEmitted.get(conditionId)
            if last is not None and now - last < self.cooldownSeconds:
                self._suppressed[conditionId] = self._suppressed.get(conditionId, 0) + 1
                return False
            self._lastEmitted[conditionId] = now
            suppressed = self._suppressed.pop(conditionId, 0)

        if suppressed:
            msg = f"{msg} (repeated {suppressed} times since last report)"
        self.logger.log(level, msg, *args, extra={'condition': conditionId})
        return True

    def info(self, conditionId: str, msg: str, *args: Any) -> bool:
        return self.log(conditionId, logging.INFO, msg, *args)

    def reset(self, conditionId: Optional[str] = None) -> None:
        with self._lock:
            if conditionId is None:
                self._lastEmitted.clear()
                self._suppressed.clear()
            else:
                self._lastEmitted.pop(conditionId, None)
                self._suppressed.pop(conditionId, None)
