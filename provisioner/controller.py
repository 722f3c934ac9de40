"""
Database Provisioner Controller

Provisions users, databases, ownership and privileges on PostgreSQL and
MySQL/MariaDB servers from a declarative configuration file.

Features:
- Idempotent create-or-update for users, databases, owners and grants
- PostgreSQL-family and MySQL/MariaDB-family dialects
- Fixed-delay connection retry with a liveness probe
- Per-grant and per-server failure isolation
- Run-once mode or watch mode polling the config file for changes
- Structured logging with a summary per run
"""

import os
import sys
import time
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from provisioner.config import Config, load_desired_state
from provisioner.connection import RetryPolicy, connect_with_retry
from provisioner.dialects import detect_dialect
from provisioner.errors import ConfigError, ServerConnectionError
from provisioner.models import DesiredState, RunReport, ServerReport, ServerTarget
from provisioner.reconciler import Reconciler

# ANSI color codes
BLUE = "\033[94m"
RED = "\033[91m"
WHITE = "\033[97m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RESET = "\033[0m"

# Configure structured logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("db-provisioner")


# ============================================================================
# RUN ORCHESTRATOR
# ============================================================================

class ProvisionerController:
    """
    Runs reconciliation for every configured server, one after another
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, connector: Optional[Callable] = None):
        self.policy = policy or RetryPolicy()
        self.connector = connector or connect_with_retry

    def run(self, desired_state: DesiredState) -> RunReport:
        """
        Reconcile all servers of a desired-state snapshot

        Args:
            desired_state: Validated desired state

        Returns:
            RunReport with one ServerReport per server, in config order
        """
        report = RunReport(start_time=datetime.now())

        for index, server in enumerate(desired_state.servers):
            report.servers.append(self.process_server(index, server))

        report.end_time = datetime.now()
        self.log_summary(report)
        return report

    def process_server(self, index: int, server: ServerTarget) -> ServerReport:
        server_name = server.display_name(index)

        logger.info("=" * 60)
        logger.info(f"Processing server: {server_name}")
        logger.info("=" * 60)

        dialect = detect_dialect(server.connection_descriptor)
        server_report = ServerReport(name=server_name, dialect=dialect.name)
        logger.info(f"Detected {dialect.name} connection for {server_name}")

        try:
            conn = self.connector(dialect, server.connection_descriptor, self.policy)
        except ServerConnectionError as e:
            logger.error(f"{RED}Failed to connect to {server_name}: {e}{RESET}")
            logger.warning(f"{YELLOW}Skipping server: {server_name}{RESET}")
            server_report.error = str(e)
            return server_report

        server_report.connected = True
        logger.info(f"Connected to {server_name} successfully")

        try:
            server_report.results = Reconciler(dialect, server_name).reconcile(
                conn, server.managed_entities
            )
        except Exception as e:
            logger.error(f"Unexpected error while reconciling {server_name}: {e}", exc_info=True)
            server_report.error = str(e)
        finally:
            self._close(conn, server_name)

        logger.info(f"{WHITE}Completed processing server: {server_name} "
                    f"({server_report.succeeded} succeeded, {server_report.failed} failed){RESET}")
        return server_report

    def _close(self, conn, server_name: str):
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"Error closing connection to {server_name}: {e}")

    def log_summary(self, report: RunReport):
        logger.info("=" * 60)
        logger.info(f"{WHITE}Provisioning Summary:{RESET}")
        logger.info(f"  • Servers processed: {report.servers_processed}")
        logger.info(f"  • Servers skipped: {report.servers_skipped}")
        logger.info(f"  • Grants succeeded: {report.grants_succeeded}")
        logger.info(f"  • Grants failed: {report.grants_failed}")
        logger.info(f"  • Duration: {report.duration_seconds():.2f}s")
        for server_report in report.servers:
            for result in server_report.results:
                if not result.succeeded:
                    logger.info(f"  ↳ {server_report.name}: {result.grant.describe()} "
                                f"failed at {result.failed_step}: {result.error}")
        logger.info("=" * 60)


# ============================================================================
# WATCH LOOP
# ============================================================================

def run_once(config_path: Union[str, Path], controller: ProvisionerController) -> RunReport:
    """
    Load the desired state and run one full reconciliation

    Raises:
        ConfigError: if the document cannot be loaded or is invalid
    """
    desired_state = load_desired_state(config_path)
    return controller.run(desired_state)


class ConfigWatcher:
    """Polls the config file modification time and reruns on change"""

    def __init__(self, config_path: Union[str, Path], controller: ProvisionerController,
                 interval: float = 10.0):
        self.config_path = Path(config_path)
        self.controller = controller
        self.interval = interval
        self.last_modified: Optional[float] = None

    def poll(self) -> Optional[RunReport]:
        """
        Check the config file once

        Returns:
            RunReport if a changed file was processed, None otherwise
        """
        try:
            modified = os.stat(self.config_path).st_mtime
        except OSError as e:
            logger.error(f"Error checking config file: {e}")
            return None

        if self.last_modified is not None and modified <= self.last_modified:
            return None

        logger.info(f"{BLUE}Config file changed, reprocessing...{RESET}")
        # Recorded before loading so a broken file waits for the next change
        self.last_modified = modified

        try:
            report = run_once(self.config_path, self.controller)
        except ConfigError as e:
            logger.error(f"{RED}Failed to load config: {e}{RESET}")
            return None

        logger.info(f"{GREEN}Config processed successfully{RESET}")
        return report

    def run_forever(self, sleep: Callable[[float], None] = time.sleep):
        logger.info("Running in WATCH MODE - will monitor config file for changes")
        logger.info(f"Check interval: {self.interval}s")

        while True:
            self.poll()
            sleep(self.interval)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main() -> int:
    """Main entry point"""
    logger.info("Database provisioner starting...")
    controller = ProvisionerController(RetryPolicy.from_config())

    try:
        if Config.WATCH_MODE:
            ConfigWatcher(Config.CONFIG_PATH, controller, Config.CHECK_INTERVAL).run_forever()
        else:
            run_once(Config.CONFIG_PATH, controller)
            logger.info(f"{GREEN}Database provisioning completed{RESET}")
    except ConfigError as e:
        logger.critical(f"Failed to load config: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
