#Relays normalized batches to the central ingestion endpoint.

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
import logging
import threading

import requests

from ..errors import ForwardError
from ..normalization.schema import NormalizedLogBatch


LOG_SEPARATOR = '<utm-log-separator>'
CONNECTION_KEY_HEADER = 'Utm-Connection-Key'
LOG_TYPE_HEADER = 'Utm-Log-Type'
LOG_SOURCE_HEADER = 'Utm-Log-Source'


class LogForwarder(ABC):

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def send(self, batch: NormalizedLogBatch) -> None:
        """
        Deliver one batch, preserving record order.

        Raises:
            ForwardError: If delivery failed; the caller drops the batch
        """


class HttpLogForwarder(LogForwarder):

    def __init__(
        self,
        url: str,
        connectionKey: str,
        logSource: str,
        timeout: float = 30.0,
        maxLinesPerRequest: int = 500,
        session: Optional[requests.Session] = None
    ):
        super().__init__()
        self.url = url
        self.connectionKey = connectionKey
        self.logSource = logSource
        self.timeout = timeout
        self.maxLinesPerRequest = max(1, maxLinesPerRequest)
        # Group tasks forward concurrently; each worker thread gets its own
        # session unless one is injected
        self.session = session
        self._local = threading.local()

    def send(self, batch: NormalizedLogBatch) -> None:
        if batch.isEmpty():
            return

        try:
            batch.validate()
        except ValueError as e:
            raise ForwardError(f"refusing to forward batch for {batch.groupName}: {e}") from e

        lines = batch.lines()
        for chunk in self._chunks(lines):
            self._post(batch.logType, chunk)

        self.logger.info(f"Forwarded {len(lines)} {batch.logType} logs for {batch.groupName}")

    def _session(self) -> requests.Session:
        if self.session is not None:
            return self.session
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _chunks(self, lines: List[str]) -> List[List[str]]:
        size = self.maxLinesPerRequest
        return [lines[i:i + size] for i in range(0, len(lines), size)]

    def _post(self, logType: str, lines: List[str]) -> None:
        headers = {
            CONNECTION_KEY_HEADER: self.connectionKey,
            LOG_TYPE_HEADER: logType,
            LOG_SOURCE_HEADER: self.logSource,
            'Content-Type': 'text/plain; charset=utf-8',
        }

        try:
            response = self._session().post(
                self.url,
                data=LOG_SEPARATOR.join(lines).encode('utf-8'),
                headers=headers,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ForwardError(f"failed to forward {len(lines)} {logType} logs: {e}") from e
