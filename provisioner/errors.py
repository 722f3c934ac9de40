"""
Error taxonomy for the provisioner.

Scope of each error:
- ConfigError: fatal for a run, nothing is reconciled
- ServerConnectionError: the server is skipped
- QueryError / StatementError / InvalidIdentifierError: the grant is failed
"""


class ProvisionerError(Exception):
    """Base class for all provisioner errors"""


class ConfigError(ProvisionerError):
    """Desired-state document is missing, unreadable or invalid"""


class ServerConnectionError(ProvisionerError):
    """Connection or liveness probe failed on every attempt"""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class GrantError(ProvisionerError):
    """Failure scoped to a single database grant"""


class QueryError(GrantError):
    """An existence-check query failed"""


class StatementError(GrantError):
    """A create, alter or grant statement failed"""


class InvalidIdentifierError(GrantError):
    """A database or user name cannot be used safely as an identifier"""
