"""
Data models for desired state and reconciliation results
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, List

from provisioner.errors import ConfigError


# ============================================================================
# DESIRED STATE
# ============================================================================

@dataclass(frozen=True)
class DatabaseGrant:
    """One desired (database, user, password) tuple"""
    database_name: str
    user_name: str
    password: str = field(repr=False)

    def describe(self) -> str:
        return f"{self.database_name}/{self.user_name}"


@dataclass(frozen=True)
class ServerTarget:
    """One managed database server and the grants it should carry"""
    name: str
    connection_descriptor: str = field(repr=False)
    managed_entities: Tuple[DatabaseGrant, ...] = ()

    def display_name(self, index: int) -> str:
        """
        Human label for logs and reports

        Args:
            index: 0-based position of the server in the desired state
        """
        return self.name or f"Server {index + 1}"

    def validate(self, index: int):
        if not self.connection_descriptor:
            raise ConfigError(f"server {index}: root connection string is required")
        if not self.managed_entities:
            raise ConfigError(
                f"server {index} ({self.name}): at least one database configuration is required"
            )


@dataclass(frozen=True)
class DesiredState:
    """Full desired-state snapshot, one per reconciliation pass"""
    servers: Tuple[ServerTarget, ...] = ()

    def validate(self) -> "DesiredState":
        if not self.servers:
            raise ConfigError("at least one server configuration is required")
        for index, server in enumerate(self.servers):
            server.validate(index)
        return self


# ============================================================================
# RESULTS
# ============================================================================

class UserOutcome(Enum):
    CREATED = "created"
    PASSWORD_UPDATED = "password_updated"


class DatabaseOutcome(Enum):
    CREATED = "created"
    OWNER_UPDATED = "owner_updated"
    # create-if-not-exists without knowing whether it already existed
    ENSURED = "ensured"


@dataclass
class GrantResult:
    """Outcome of reconciling a single grant"""
    grant: DatabaseGrant
    succeeded: bool = True
    failed_step: Optional[str] = None
    error: Optional[str] = None
    user_outcome: Optional[UserOutcome] = None
    database_outcome: Optional[DatabaseOutcome] = None

    def to_dict(self) -> dict:
        return {
            'database': self.grant.database_name,
            'user': self.grant.user_name,
            'succeeded': self.succeeded,
            'failed_step': self.failed_step,
            'error': self.error,
            'user_outcome': self.user_outcome.value if self.user_outcome else None,
            'database_outcome': self.database_outcome.value if self.database_outcome else None,
        }


@dataclass
class ServerReport:
    """Outcome of processing one server"""
    name: str
    dialect: str
    connected: bool = False
    error: Optional[str] = None
    results: List[GrantResult] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return not self.connected

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'dialect': self.dialect,
            'connected': self.connected,
            'error': self.error,
            'results': [r.to_dict() for r in self.results],
        }


@dataclass
class RunReport:
    """Ordered per-server outcomes for one run"""
    servers: List[ServerReport] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def servers_processed(self) -> int:
        return sum(1 for s in self.servers if s.connected)

    @property
    def servers_skipped(self) -> int:
        return sum(1 for s in self.servers if s.skipped)

    @property
    def grants_succeeded(self) -> int:
        return sum(s.succeeded for s in self.servers)

    @property
    def grants_failed(self) -> int:
        return sum(s.failed for s in self.servers)

    def duration_seconds(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    def to_dict(self) -> dict:
        return {
            'servers': [s.to_dict() for s in self.servers],
            'servers_processed': self.servers_processed,
            'servers_skipped': self.servers_skipped,
            'grants_succeeded': self.grants_succeeded,
            'grants_failed': self.grants_failed,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': self.duration_seconds(),
        }
