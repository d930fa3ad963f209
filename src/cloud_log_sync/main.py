"""
Cloud Log Sync

Entry point that wires one integration module's sync engine together and
keeps it running until the process is terminated.
"""

import sys
import signal
import logging
from typing import Optional
import click

from .errors import StartupError
from .forwarding.forwarder import HttpLogForwarder
from .ingestion.registry import availableModules, createAdapter
from .normalization.normalizer import LogNormalizer
from .sync.checkpoint_store import CheckpointStore
from .sync.config_fetcher import ConfigurationFetcher
from .sync.dispatcher import GroupDispatcher
from .sync.models import CycleResult
from .sync.scheduler import CycleScheduler
from .utils.config_loader import ConfigLoader, Settings
from .utils.connectivity import ConnectivityProber
from .utils.logger import RateLimitedLogger, setupLogging
from .utils.metrics import MetricsCollector


class SyncService:
    """
    Sync service for one integration module.

    Coordinates:
    1. Configuration service polling
    2. Per-group vendor fetches through the module's adapter
    3. Checkpoint tracking
    4. Forwarding to the ingestion pipeline
    """

    def __init__(self, config_path: str, module: Optional[str] = None):
        """
        Initialize the service.

        Args:
            config_path: Path to configuration file
            module: Integration module, overriding ``sync.module``

        Raises:
            FileNotFoundError: If config file not found
            StartupError: If a required setting is missing
            ValueError: If the module has no adapter
        """
        try:
            # Load configuration
            self.config_loader = ConfigLoader(config_path)
            self.config = self.config_loader.load()

            # Setup logging
            setupLogging(self.config)
            self.logger = logging.getLogger(self.__class__.__name__)

            self.settings = Settings.fromConfig(self.config, module)
            self.settings.validate()
            if not self.settings.connectionKey.strip():
                self.logger.warning(
                    "Connection key is not set (forwarder.connection_key or UTM_CONNECTION_KEY); "
                    "the ingestion endpoint will reject every batch"
                )

            self.logger.info(f"Starting {self.settings.module} module...")

            self.metrics = MetricsCollector()
            self.rateLimitedLogger = RateLimitedLogger(
                logging.getLogger('cloud_log_sync'),
                cooldownSeconds=self.settings.logCooldownSeconds
            )

            self.adapter = createAdapter(
                self.settings.module,
                self.settings.vendor,
                LogNormalizer(self.settings.normalization)
            )

            self.configFetcher = ConfigurationFetcher(
                internalKey=self.settings.internalKey,
                panelHost=self.settings.panelHost,
                timeout=self.settings.configTimeout
            )

            self.forwarder = HttpLogForwarder(
                url=self.settings.forwarderUrl,
                connectionKey=self.settings.connectionKey,
                logSource=self.settings.logSource,
                timeout=self.settings.forwarderTimeout,
                maxLinesPerRequest=self.settings.maxLinesPerRequest
            )

            self.checkpoints = CheckpointStore()

            self.dispatcher = GroupDispatcher(
                adapter=self.adapter,
                forwarder=self.forwarder,
                checkpoints=self.checkpoints,
                rateLimitedLogger=self.rateLimitedLogger,
                metrics=self.metrics,
                maxWorkers=self.settings.maxWorkers
            )

            checkUrl = self.settings.checkUrl or self.adapter.checkUrl
            self.prober = ConnectivityProber(
                checkUrl,
                timeout=self.settings.checkTimeout,
                attempts=self.settings.checkAttempts,
                delaySeconds=self.settings.checkDelaySeconds
            ) if checkUrl else None

            self.scheduler = CycleScheduler(
                moduleName=self.settings.module,
                configFetcher=self.configFetcher,
                dispatcher=self.dispatcher,
                prober=self.prober,
                intervalSeconds=self.settings.intervalSeconds,
                rateLimitedLogger=self.rateLimitedLogger,
                metrics=self.metrics
            )

            self.logger.info("Sync service initialized successfully")

        except FileNotFoundError as e:
            print(f"Error: Configuration file not found - {e}", file=sys.stderr)
            raise
        except StartupError as e:
            logging.getLogger(self.__class__.__name__).critical(f"{e}. Exiting...")
            raise
        except ValueError as e:
            print(f"Error: Invalid configuration - {e}", file=sys.stderr)
            raise

    def run_once(self) -> CycleResult:
        """Run a single cycle and report it."""
        result = self.scheduler.runCycle()
        self.metrics.log_metrics()
        return result

    def run_continuous(self) -> None:
        """Run cycles until SIGTERM/SIGINT."""
        signal.signal(signal.SIGTERM, self._handleSignal)

        try:
            self.scheduler.runForever()
        finally:
            self.metrics.log_metrics()

    def _handleSignal(self, signum, frame) -> None:
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def stop(self) -> None:
        self.scheduler.stop()


@click.command()
@click.option(
    '--config',
    default='config/config.yaml',
    help='Path to configuration file'
)
@click.option(
    '--module',
    type=click.Choice(availableModules(), case_sensitive=False),
    default=None,
    help='Integration module to run (overrides sync.module)'
)
@click.option(
    '--once',
    is_flag=True,
    help='Run a single cycle and exit'
)
def cli(config, module, once):
    """Cloud Log Sync"""

    try:
        service = SyncService(config, module)

        if once:
            result = service.run_once()
            sys.exit(0 if result.advanced else 1)

        service.run_continuous()

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    cli()
