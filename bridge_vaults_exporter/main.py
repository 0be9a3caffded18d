"""Main application entry point for the bridge vaults exporter."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from .config.loader import ConfigLoader
from .config.models import ExporterConfig
from .config.settings import Settings
from .collectors.vault_collector import VaultCollector
from .scheduler import CollectionScheduler
from .services.metrics_server import MetricsServer
from .services.snapshot_store import SnapshotStore
from .utils.exposition import render_snapshot
from .utils.logger import apply_logging_config, setup_logger


class ExporterApp:
    """
    Exporter application.

    Wires configuration, collector, snapshot store, scheduler and the
    metrics endpoint, and runs them until a shutdown signal arrives.
    """

    def __init__(self, config_path: str = "config.yaml", log_level: Optional[str] = None):
        """
        Initialize exporter application.

        Args:
            config_path: Path to configuration file
            log_level: Log level overriding the configured one

        Raises:
            SystemExit: If configuration is invalid
        """
        self.config_path = config_path
        self.logger = setup_logger("bridge_vaults_exporter", log_level or "INFO")

        self.config = self._load_config()
        self.logger = apply_logging_config(self.logger, self.config.logging, log_level)

        self.store = SnapshotStore(
            publish_empty=self.config.collection.publish_empty,
            logger=self.logger
        )
        self.collector = VaultCollector(self.config, self.logger)
        self.scheduler = CollectionScheduler(
            self.collector,
            self.store,
            interval_sec=self.config.metrics_settings.collection_interval_sec,
            deadline_sec=self.config.cycle_deadline_sec,
            logger=self.logger
        )
        self.server: Optional[MetricsServer] = None
        self._stop: Optional[asyncio.Event] = None

        self.logger.info("Application initialized successfully")

    def _load_config(self) -> ExporterConfig:
        """
        Load and validate configuration.

        Returns:
            ExporterConfig: Loaded configuration

        Raises:
            SystemExit: If configuration is invalid
        """
        try:
            self.logger.info(f"Loading configuration from {self.config_path}")
            config = ConfigLoader.load_from_file(self.config_path)
            self.logger.info(
                f"Configuration loaded: {len(config.networks)} network(s), "
                f"interval {config.metrics_settings.collection_interval_sec}s"
            )
            return config

        except FileNotFoundError:
            self.logger.error(
                f"Configuration file not found: {self.config_path}\n"
                "Please create it from config/config.example.yaml"
            )
            sys.exit(1)

        except Exception as e:
            self.logger.error(f"Failed to load configuration: {e}", exc_info=True)
            sys.exit(1)

    async def run_once(self) -> str:
        """
        Execute one collection cycle and render the resulting snapshot.

        Returns:
            str: Exposition text of the published snapshot
        """
        try:
            await self.scheduler.run_cycle()
        finally:
            await self.collector.aclose()
        return render_snapshot(self.store.current())

    async def serve(self):
        """Serve metrics and collect on schedule until SIGINT/SIGTERM."""
        self._stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        signals = (signal.SIGTERM, signal.SIGINT)
        for signum in signals:
            loop.add_signal_handler(signum, self._signal_handler, signum)

        settings = self.config.metrics_settings
        self.server = MetricsServer(
            self.store,
            host=settings.host,
            port=settings.port,
            metrics_path=settings.metrics_path,
            logger=self.logger
        )
        self.server.start()
        self.scheduler.start()

        self.logger.info(
            f"Server is running on {settings.listen_address} "
            f"with interval {settings.collection_interval_sec}s"
        )

        try:
            await self._stop.wait()
        finally:
            for signum in signals:
                loop.remove_signal_handler(signum)
            self.scheduler.shutdown()
            await self.scheduler.wait_idle()
            self.server.stop()
            await self.collector.aclose()
            self.logger.info("Exporter stopped")

    def _signal_handler(self, signum):
        """
        Handle shutdown signals.

        Args:
            signum: Signal number
        """
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        if self._stop is not None:
            self._stop.set()


def main():
    """
    CLI entry point.

    Parses command-line arguments and starts the exporter.
    """
    parser = argparse.ArgumentParser(
        description='Bridge vaults state exporter',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve metrics and collect on schedule
  bridge-vaults-exporter --config config.yaml

  # Collect once, print the metrics and exit
  bridge-vaults-exporter --config config.yaml --run-once
        """
    )

    parser.add_argument(
        '--config', '-c',
        default=Settings.config_path(),
        help='Path to configuration file (default: config.yaml or BRIDGE_VAULTS_EXPORTER_CONFIG)'
    )

    parser.add_argument(
        '--run-once',
        action='store_true',
        help='Run one collection cycle, print the metrics and exit'
    )

    parser.add_argument(
        '--log-level',
        default=Settings.log_level(),
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from config, or LOG_LEVEL env var)'
    )

    args = parser.parse_args()

    app = ExporterApp(config_path=args.config, log_level=args.log_level)

    try:
        if args.run_once:
            output = asyncio.run(app.run_once())
            sys.stdout.write(output)
        else:
            asyncio.run(app.serve())

    except Exception as e:
        logging.getLogger("bridge_vaults_exporter").error(f"Exporter failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
