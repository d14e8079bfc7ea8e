import logging

from nightfall.exceptions import StorageError
from nightfall.storage import AuditAction, AuditLogEntry, Repository

logger = logging.getLogger(__name__)


class AuditTrail:
    """Writes audit entries on behalf of the platform fee wallet."""

    def __init__(self, repository: Repository, system_wallet: str):
        self.repository = repository
        self.system_wallet = system_wallet

    def record(
        self,
        action: AuditAction,
        details: str,
        target_user: str | None = None,
    ) -> AuditLogEntry | None:
        """Append an entry. Storage failures are logged and return None."""
        try:
            entry = self.repository.create_audit_log(
                AuditLogEntry(
                    admin_wallet=self.system_wallet,
                    action=action,
                    target_user=target_user,
                    details=details,
                )
            )
        except StorageError as e:
            logger.error(f"Audit {action} not recorded ({details}): {e}")
            return None
        logger.debug(f"Audit {action}: {details}")
        return entry
