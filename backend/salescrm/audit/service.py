import logging
import secrets

from sqlalchemy.orm import Session

from salescrm.audit.models import OpsAuditLog

logger = logging.getLogger(__name__)

ROLE_CHANGE = "role_change"
MEMBER_REMOVED = "member_removed"
MANAGER_ASSIGNED = "manager_assigned"
MEMBER_INVITED = "member_invited"
LEADS_REASSIGNED = "leads_reassigned"
DOMAIN_SAVED = "domain_saved"
DOMAIN_VERIFIED = "domain_verified"
TENANT_DEACTIVATED = "tenant_deactivated"


def write_ops_audit_log(
    db: Session,
    *,
    tenant_id: str,
    actor_user_id: str,
    action_type: str,
    target_id: str | None = None,
    reason: str = "",
    metadata: dict | None = None,
) -> None:
    """Record an authorization-relevant mutation. Commits on its own."""
    row = OpsAuditLog(
        id=f"opl_{secrets.token_hex(12)}",
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action_type=action_type,
        target_id=target_id,
        reason=reason,
        metadata_json=metadata or {},
    )
    db.add(row)
    db.commit()
    logger.debug("Audit %s tenant=%s actor=%s target=%s", action_type, tenant_id, actor_user_id, target_id)
