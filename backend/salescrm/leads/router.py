import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from salescrm.audit.service import LEADS_REASSIGNED, write_ops_audit_log
from salescrm.auth.deps import get_current_member
from salescrm.core.errors import DomainError, http_status_for
from salescrm.db.session import get_db
from salescrm.hierarchy.deps import get_hierarchy_service
from salescrm.hierarchy.service import HierarchyService
from salescrm.hierarchy.tree import MemberNode
from salescrm.leads.models import Lead
from salescrm.leads.schemas import (
    LeadAssignRequest,
    LeadAssignResponse,
    LeadListResponse,
    LeadOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=LeadListResponse)
def list_leads(
    db: Session = Depends(get_db),
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    stmt = select(Lead).where(Lead.tenant_id == actor.tenant_id)
    if not service.roles.is_owner(actor.role):
        try:
            visible = service.visible_members(actor).ids
        except DomainError as exc:
            raise HTTPException(status_code=http_status_for(exc), detail=exc.message) from exc
        if not visible:
            return LeadListResponse(tenant_id=actor.tenant_id, leads=[])
        stmt = stmt.where(Lead.sales_owner_id.in_(visible))

    rows = db.execute(stmt.order_by(Lead.created_at.desc())).scalars().all()
    return LeadListResponse(
        tenant_id=actor.tenant_id,
        leads=[
            LeadOut(id=r.id, name=r.name, sales_owner_id=r.sales_owner_id, created_at=r.created_at)
            for r in rows
        ],
    )


@router.post("/assign", response_model=LeadAssignResponse)
def assign_leads(
    payload: LeadAssignRequest,
    db: Session = Depends(get_db),
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    lead_ids = set(payload.lead_ids)
    rows = db.execute(
        select(Lead).where(Lead.tenant_id == actor.tenant_id, Lead.id.in_(lead_ids))
    ).scalars().all()
    if len(rows) != len(lead_ids):
        raise HTTPException(status_code=404, detail="Lead not found")

    current_owners = {r.sales_owner_id for r in rows}
    try:
        decision = service.can_reassign_records(actor, current_owners, payload.sales_owner_id)
        decision.raise_for_denial()
    except DomainError as exc:
        raise HTTPException(
            status_code=http_status_for(exc),
            detail={"code": exc.code, "reason": exc.reason, "message": exc.message},
        ) from exc

    result = db.execute(
        update(Lead)
        .where(Lead.tenant_id == actor.tenant_id, Lead.id.in_(lead_ids))
        .values(sales_owner_id=payload.sales_owner_id)
    )
    db.commit()
    updated = int(result.rowcount or 0)
    logger.info(
        "Leads reassigned tenant=%s actor=%s count=%s owner=%s",
        actor.tenant_id, actor.id, updated, payload.sales_owner_id,
    )

    write_ops_audit_log(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.id,
        action_type=LEADS_REASSIGNED,
        target_id=payload.sales_owner_id,
        metadata={"lead_ids": sorted(lead_ids), "previous_owners": sorted(o for o in current_owners if o)},
    )
    return LeadAssignResponse(updated=updated, sales_owner_id=payload.sales_owner_id)
