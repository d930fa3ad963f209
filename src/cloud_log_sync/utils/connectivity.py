# Vendor reachability probe, run at the start of every cycle.

from typing import Callable, Optional
import logging
import time

import requests

from ..errors import ConnectivityError


class ConnectivityProber:

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        attempts: int = 3,
        delaySeconds: float = 5.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.url = url
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.delaySeconds = delaySeconds
        self.session = session or requests.Session()
        self.sleep = sleep
        self.logger = logging.getLogger(self.__class__.__name__)

    def check(self) -> None:
        """
        Raises:
            ConnectivityError: If no attempt got an HTTP response
        """
        lastError: Optional[Exception] = None

        for attempt in range(1, self.attempts + 1):
            try:
                # Any status code proves the host answered
                self.session.get(self.url, timeout=self.timeout)
                return
            except requests.RequestException as e:
                lastError = e
                self.logger.debug(f"Connection attempt {attempt}/{self.attempts} to {self.url} failed: {e}")
                if attempt < self.attempts:
                    self.sleep(self.delaySeconds)

        raise ConnectivityError(f"{self.url} unreachable after {self.attempts} attempts: {lastError}")
