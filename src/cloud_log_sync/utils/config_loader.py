"""
Configuration Loader

Loads configuration from YAML files with environment variable substitution and
resolves the process settings the sync engine is started with.
"""

import yaml
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional
import re
import logging

from ..errors import StartupError


# Environment fallbacks for settings left out of the YAML file
INTERNAL_KEY_ENV = 'INTERNAL_KEY'
PANEL_HOST_ENV = 'PANEL_SERV_NAME'
CONNECTION_KEY_ENV = 'UTM_CONNECTION_KEY'
LOG_ENDPOINT_ENV = 'UTM_LOG_ENDPOINT'


class ConfigLoader:
    """
    Reads the process YAML file.

    ``${VAR_NAME}`` references are resolved from the environment before the
    YAML is parsed, and ``get`` accepts dotted paths such as
    ``vendors.sophos.page_limit``.
    """

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config: Dict[str, Any] = {}

    def load(self) -> Dict[str, Any]:
        """
        Raises:
            FileNotFoundError: If the file does not exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as f:
                content = f.read()

            # Substitute environment variables
            content = self._substituteEnvVars(content)

            # Parse YAML
            self.config = yaml.safe_load(content) or {}

            self.logger.info(f"Configuration loaded from {self.config_path}")
            return self.config

        except Exception as e:
            self.logger.error(f"Error loading configuration: {e}")
            raise

    def _substituteEnvVars(self, content: str) -> str:
        """
        Substitute environment variables in format ${VAR_NAME}.

        Unset variables become empty strings so that required settings fail
        validation instead of carrying the placeholder text.
        """
        pattern = r'\$\{([^}]+)\}'

        def replacer(match):
            var_name = match.group(1)
            value = os.environ.get(var_name)
            if value is None:
                self.logger.warning(f"Environment variable not found: {var_name}")
                return ''
            return value

        return re.sub(pattern, replacer, content)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value


@dataclass
class Settings:
    """Process settings consumed once at startup."""
    module: str
    internalKey: str = ''
    panelHost: str = ''
    intervalSeconds: float = 300.0
    maxWorkers: Optional[int] = None
    configTimeout: float = 30.0
    forwarderUrl: str = ''
    connectionKey: str = ''
    logSource: str = ''
    forwarderTimeout: float = 30.0
    maxLinesPerRequest: int = 500
    checkUrl: Optional[str] = None
    checkTimeout: float = 10.0
    checkAttempts: int = 3
    checkDelaySeconds: float = 5.0
    logCooldownSeconds: float = 1800.0
    vendor: Dict[str, Any] = field(default_factory=dict)
    normalization: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def fromConfig(cls, config: Dict[str, Any], module: Optional[str] = None) -> 'Settings':
        syncConfig = config.get('sync', {}) or {}
        panelConfig = config.get('panel', {}) or {}
        forwarderConfig = config.get('forwarder', {}) or {}
        connectivityConfig = config.get('connectivity', {}) or {}
        loggingConfig = config.get('logging', {}) or {}

        moduleName = module or syncConfig.get('module') or ''
        vendorConfig = (config.get('vendors', {}) or {}).get(moduleName, {}) or {}

        maxWorkers = syncConfig.get('max_workers')

        return cls(
            module=moduleName,
            internalKey=panelConfig.get('internal_key') or os.environ.get(INTERNAL_KEY_ENV, ''),
            panelHost=panelConfig.get('host') or os.environ.get(PANEL_HOST_ENV, ''),
            intervalSeconds=float(syncConfig.get('interval_seconds', 300)),
            maxWorkers=int(maxWorkers) if maxWorkers else None,
            configTimeout=float(panelConfig.get('timeout', 30)),
            forwarderUrl=forwarderConfig.get('url') or os.environ.get(LOG_ENDPOINT_ENV, ''),
            connectionKey=forwarderConfig.get('connection_key') or os.environ.get(CONNECTION_KEY_ENV, ''),
            logSource=forwarderConfig.get('log_source') or moduleName,
            forwarderTimeout=float(forwarderConfig.get('timeout', 30)),
            maxLinesPerRequest=int(forwarderConfig.get('max_lines_per_request', 500)),
            checkUrl=connectivityConfig.get('url') or None,
            checkTimeout=float(connectivityConfig.get('timeout', 10)),
            checkAttempts=int(connectivityConfig.get('attempts', 3)),
            checkDelaySeconds=float(connectivityConfig.get('delay_seconds', 5)),
            logCooldownSeconds=float(loggingConfig.get('rate_limit_cooldown_seconds', 1800)),
            vendor=vendorConfig,
            normalization=config.get('normalization', {}) or {}
        )

    def validate(self) -> None:
        """
        Raises:
            StartupError: If a setting the engine cannot run without is missing
        """
        if not self.internalKey.strip() or not self.panelHost.strip():
            raise StartupError("Internal key or panel service name is not set")

        if not self.module:
            raise StartupError("No integration module selected")

        if not self.forwarderUrl.strip():
            raise StartupError("Log ingestion endpoint is not set")

        if self.intervalSeconds <= 0:
            raise StartupError(f"Invalid sync interval: {self.intervalSeconds}")
