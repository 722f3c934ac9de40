"""
Process configuration and desired-state document loading

The document is YAML (JSON is accepted as well since the YAML loader reads it):

    servers:
      - name: primary
        root_connection_string: postgres://postgres:${PG_PASS}@db:5432/postgres
        databases:
          - database: app
            user: app
            password: ${APP_PASS}
"""

import os
import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from provisioner.errors import ConfigError
from provisioner.models import DatabaseGrant, DesiredState, ServerTarget

logger = logging.getLogger("db-provisioner")

ENV_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


# ============================================================================
# CONFIGURATION
# ============================================================================

class Config:
    """Provisioner configuration loaded from environment variables"""

    CONFIG_PATH = os.getenv("CONFIG_PATH", "/config/config.json")
    WATCH_MODE = os.getenv("WATCH_MODE", "false").lower() == "true"
    CHECK_INTERVAL = float(os.getenv("CHECK_INTERVAL", "10"))

    # Connection settings
    MAX_RETRIES = int(os.getenv("MAX_RETRIES", "5"))
    RETRY_DELAY = float(os.getenv("RETRY_DELAY", "5"))
    PING_TIMEOUT = float(os.getenv("PING_TIMEOUT", "5"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# ============================================================================
# DOCUMENT LOADING
# ============================================================================

def resolve_env(value: Any, environ: Dict[str, str] = None) -> Any:
    """
    Replace ${NAME} placeholders in strings with environment values

    Args:
        value: Any parsed YAML value; mappings and lists are walked
        environ: Environment to resolve from, defaults to os.environ

    Returns:
        The value with every placeholder substituted
    """
    if environ is None:
        environ = os.environ

    if isinstance(value, dict):
        return {k: resolve_env(v, environ) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env(v, environ) for v in value]
    if not isinstance(value, str):
        return value

    def _substitute(match):
        name = match.group(1)
        if name not in environ:
            raise ConfigError(f"environment variable {name} is not set")
        return environ[name]

    return ENV_PLACEHOLDER.sub(_substitute, value)


def _require_string(entry: Dict[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if value is None or value == "":
        raise ConfigError(f"{where}: '{key}' is required")
    # YAML reads unquoted 0755 or yes as int/bool; never coerce credentials
    if not isinstance(value, str):
        raise ConfigError(f"{where}: '{key}' must be a string, quote it in the config file")
    return value


def parse_desired_state(document: Any) -> DesiredState:
    """
    Build a validated DesiredState from a parsed document

    Args:
        document: Result of yaml.safe_load on the configuration file

    Returns:
        DesiredState snapshot

    Raises:
        ConfigError: if the document does not have the expected shape
    """
    if not isinstance(document, dict):
        raise ConfigError("configuration must be a mapping with a 'servers' list")

    raw_servers = document.get("servers") or []
    if not isinstance(raw_servers, list):
        raise ConfigError("'servers' must be a list")

    servers: List[ServerTarget] = []
    for index, raw in enumerate(raw_servers):
        if not isinstance(raw, dict):
            raise ConfigError(f"server {index}: entry must be a mapping")

        raw_databases = raw.get("databases") or []
        if not isinstance(raw_databases, list):
            raise ConfigError(f"server {index}: 'databases' must be a list")

        grants = []
        for db_index, entry in enumerate(raw_databases):
            where = f"server {index} database {db_index}"
            if not isinstance(entry, dict):
                raise ConfigError(f"{where}: entry must be a mapping")
            grants.append(DatabaseGrant(
                database_name=_require_string(entry, "database", where),
                user_name=_require_string(entry, "user", where),
                password=_require_string(entry, "password", where),
            ))

        descriptor = raw.get("root_connection_string") or ""
        if not isinstance(descriptor, str):
            raise ConfigError(f"server {index}: 'root_connection_string' must be a string")

        servers.append(ServerTarget(
            name=str(raw.get("name") or ""),
            connection_descriptor=descriptor,
            managed_entities=tuple(grants),
        ))

    return DesiredState(servers=tuple(servers)).validate()


def load_desired_state(path: Union[str, Path]) -> DesiredState:
    """
    Read, resolve and validate the desired-state document

    Args:
        path: Location of the YAML or JSON configuration file

    Returns:
        Validated DesiredState

    Raises:
        ConfigError: if the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        with open(path, 'r') as f:
            document = yaml.safe_load(f)
    except (IOError, OSError) as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    state = parse_desired_state(resolve_env(document))
    logger.debug(f"Loaded {len(state.servers)} server(s) from {path}")
    return state
