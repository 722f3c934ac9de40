"""
Connection establishment with bounded, fixed-delay retry
"""

import time
import logging
from dataclasses import dataclass
from typing import Callable

from provisioner.config import Config
from provisioner.dialects import Dialect
from provisioner.errors import ServerConnectionError

logger = logging.getLogger("db-provisioner")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count, delay between attempts and probe timeout"""
    max_attempts: int = 5
    delay_seconds: float = 5.0
    probe_timeout_seconds: float = 5.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=Config.MAX_RETRIES,
            delay_seconds=Config.RETRY_DELAY,
            probe_timeout_seconds=Config.PING_TIMEOUT,
        )


def _close_quietly(conn):
    try:
        conn.close()
    except Exception as e:
        logger.debug(f"Ignoring error while closing failed connection: {e}")


def connect_with_retry(dialect: Dialect, descriptor: str, policy: RetryPolicy = RetryPolicy(),
                       sleep: Callable[[float], None] = time.sleep):
    """
    Open a live connection, retrying on open or probe failure

    Args:
        dialect: Dialect used to open and probe the connection
        descriptor: Root connection string as configured
        policy: Retry settings
        sleep: Delay function, injectable for tests

    Returns:
        The first connection that passed the liveness probe

    Raises:
        ServerConnectionError: if every attempt failed
    """
    descriptor = dialect.normalize_descriptor(descriptor)
    attempts = max(1, policy.max_attempts)
    last_error = None

    for attempt in range(1, attempts + 1):
        conn = None
        try:
            conn = dialect.connect(descriptor, policy.probe_timeout_seconds)
        except Exception as e:
            last_error = e
            logger.warning(f"Attempt {attempt}/{attempts}: Failed to open connection: {e}")
        else:
            try:
                dialect.ping(conn, policy.probe_timeout_seconds)
                return conn
            except Exception as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{attempts}: Failed to ping database: {e}")
                _close_quietly(conn)

        if attempt < attempts:
            sleep(policy.delay_seconds)

    raise ServerConnectionError(
        f"failed to connect after {attempts} attempts: {last_error}", attempts=attempts
    ) from last_error
