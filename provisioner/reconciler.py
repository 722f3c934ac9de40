"""
Per-server reconciliation of database grants
"""

import logging
from typing import Iterable, List

from provisioner.dialects import Dialect
from provisioner.models import DatabaseGrant, GrantResult

logger = logging.getLogger("db-provisioner")

STEP_VALIDATE = "validate"
STEP_ENSURE_USER = "ensure_user"
STEP_ENSURE_DATABASE = "ensure_database"
STEP_GRANT_PRIVILEGES = "grant_privileges"
STEP_FINALIZE = "finalize"


class Reconciler:
    """
    Converges one server toward its list of grants

    Grants are processed in order; a failing grant is recorded and the
    remaining grants still run.
    """

    def __init__(self, dialect: Dialect, server_name: str = ""):
        self.dialect = dialect
        self.server_name = server_name or dialect.name

    def reconcile(self, conn, grants: Iterable[DatabaseGrant]) -> List[GrantResult]:
        """
        Apply every grant on an open connection

        Args:
            conn: Live connection returned by connect_with_retry
            grants: Desired grants for this server

        Returns:
            One GrantResult per grant, in input order
        """
        grants = list(grants)
        results = []
        for index, grant in enumerate(grants, start=1):
            logger.info(f"Processing database {index}/{len(grants)} on {self.server_name}: "
                        f"{grant.database_name}")
            results.append(self.apply_grant(conn, grant))
        return results

    def apply_grant(self, conn, grant: DatabaseGrant) -> GrantResult:
        result = GrantResult(grant=grant)
        step = STEP_VALIDATE
        try:
            self.dialect.validate_identifier(grant.database_name, "database")
            self.dialect.validate_identifier(grant.user_name, "user")

            step = STEP_ENSURE_USER
            result.user_outcome = self.dialect.ensure_user(conn, grant.user_name, grant.password)

            step = STEP_ENSURE_DATABASE
            result.database_outcome = self.dialect.ensure_database(
                conn, grant.database_name, grant.user_name
            )

            step = STEP_GRANT_PRIVILEGES
            self.dialect.grant_privileges(conn, grant.database_name, grant.user_name)

            step = STEP_FINALIZE
            self.dialect.finalize(conn)
        except Exception as e:
            logger.error(f"Failed to provision database {grant.database_name} "
                         f"for user {grant.user_name} on {self.server_name} at step {step}: {e}")
            result.succeeded = False
            result.failed_step = step
            result.error = str(e)
            return result

        logger.info(f"Successfully provisioned database: {grant.database_name} "
                    f"with user: {grant.user_name} on {self.server_name}")
        return result
