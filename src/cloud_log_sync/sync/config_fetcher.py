# Client for the central configuration service.

from typing import Optional
import logging

import requests

from ..errors import ConfigurationError, ConfigurationUnavailableError
from .models import ModuleConfiguration


INTERNAL_KEY_HEADER = 'Utm-Internal-Key'
MODULE_DETAILS_PATH = '/api/utm-modules/module-details-decrypted'


class ConfigurationFetcher:

    def __init__(
        self,
        internalKey: str,
        panelHost: str,
        timeout: float = 30.0,
        serverId: int = 1,
        session: Optional[requests.Session] = None
    ):
        base = panelHost if panelHost.startswith(('http://', 'https://')) else f"http://{panelHost}"
        self.baseUrl = base.rstrip('/')
        self.internalKey = internalKey
        self.timeout = timeout
        self.serverId = serverId
        self.session = session or requests.Session()
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch(self, moduleName: str) -> ModuleConfiguration:
        """
        Get the configuration of one integration module.

        Raises:
            ConfigurationUnavailableError: Body is empty or not JSON
            ConfigurationError: Transport, HTTP status or payload shape failure
        """
        try:
            response = self.session.get(
                f"{self.baseUrl}{MODULE_DETAILS_PATH}",
                params={'nameShort': moduleName.upper(), 'serverId': self.serverId},
                headers={INTERNAL_KEY_HEADER: self.internalKey},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ConfigurationError(f"request to configuration service failed: {e}") from e

        # A gateway answering for a restarting backend sends an HTML page,
        # whatever the status code
        if not (response.text or '').strip():
            raise ConfigurationUnavailableError("configuration service returned an empty body")

        try:
            payload = response.json()
        except ValueError as e:
            raise ConfigurationUnavailableError(
                f"configuration service returned a non-JSON body (HTTP {response.status_code}): {e}"
            ) from e

        if response.status_code >= 400:
            raise ConfigurationError(
                f"configuration service returned HTTP {response.status_code}: {payload}"
            )

        try:
            return ModuleConfiguration.fromDict(payload)
        except (ValueError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"malformed module configuration: {e}") from e
