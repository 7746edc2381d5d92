from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salescrm.audit.service import (
    MANAGER_ASSIGNED,
    MEMBER_INVITED,
    MEMBER_REMOVED,
    ROLE_CHANGE,
    write_ops_audit_log,
)
from salescrm.auth.deps import get_current_member
from salescrm.auth.models import User
from salescrm.auth.security import hash_password, new_member_id
from salescrm.core.errors import DomainError, http_status_for
from salescrm.db.session import get_db
from salescrm.hierarchy.deps import get_hierarchy_service
from salescrm.hierarchy.schemas import (
    AssignableRolesResponse,
    InviteRequest,
    ManagerAssignRequest,
    MemberOut,
    OrgChartNode,
    OrgChartResponse,
    RemovalResponse,
    RoleChangeRequest,
    TeamResponse,
)
from salescrm.hierarchy.service import HierarchyService
from salescrm.hierarchy.tree import MemberNode, TraversalReport

router = APIRouter()


def _raise_http(exc: DomainError) -> None:
    raise HTTPException(
        status_code=http_status_for(exc),
        detail={"code": exc.code, "reason": exc.reason, "message": exc.message},
    ) from exc


def _to_member_out(node: MemberNode, service: HierarchyService) -> MemberOut:
    return MemberOut(
        id=node.id,
        tenant_id=node.tenant_id,
        email=node.email,
        full_name=node.full_name,
        phone=node.phone,
        role=node.role,
        role_label=service.roles.label(node.role),
        level=service.roles.level(node.role),
        manager_id=node.manager_id,
    )


def _warning(report: TraversalReport) -> dict | None:
    if report.ok:
        return None
    return {
        "cycle_member_ids": list(report.cycle_member_ids),
        "dangling_member_ids": list(report.dangling_member_ids),
        "truncated": report.truncated,
    }


def _to_chart_node(raw: dict, service: HierarchyService) -> OrgChartNode:
    return OrgChartNode(
        member=_to_member_out(raw["member"], service),
        reports=[_to_chart_node(child, service) for child in raw["reports"]],
    )


@router.get("", response_model=TeamResponse)
def list_team(
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    try:
        visible = service.visible_members(actor)
    except DomainError as exc:
        _raise_http(exc)
    return TeamResponse(
        tenant_id=actor.tenant_id,
        members=[_to_member_out(m, service) for m in visible.members],
        warning=_warning(visible.report),
    )


@router.get("/chart", response_model=OrgChartResponse)
def org_chart(
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    try:
        roots, report = service.org_chart(actor)
    except DomainError as exc:
        _raise_http(exc)
    return OrgChartResponse(
        tenant_id=actor.tenant_id,
        roots=[_to_chart_node(r, service) for r in roots],
        warning=_warning(report),
    )


@router.get("/assignable-roles", response_model=AssignableRolesResponse)
def assignable_roles(
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    return AssignableRolesResponse(
        roles=[
            {"role": r, "label": service.roles.label(r), "level": service.roles.level(r)}
            for r in service.assignable_roles(actor)
        ]
    )


@router.patch("/{member_id}/role", response_model=MemberOut)
def change_role(
    member_id: str,
    payload: RoleChangeRequest,
    db: Session = Depends(get_db),
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    try:
        updated = service.promote(actor, member_id, payload.role)
    except DomainError as exc:
        _raise_http(exc)

    write_ops_audit_log(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.id,
        action_type=ROLE_CHANGE,
        target_id=updated.id,
        metadata={"role": updated.role},
    )
    return _to_member_out(updated, service)


@router.put("/{member_id}/manager", response_model=MemberOut)
def assign_manager(
    member_id: str,
    payload: ManagerAssignRequest,
    db: Session = Depends(get_db),
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    try:
        updated = service.assign_manager(actor, member_id, payload.manager_id)
    except DomainError as exc:
        _raise_http(exc)

    write_ops_audit_log(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.id,
        action_type=MANAGER_ASSIGNED,
        target_id=updated.id,
        metadata={"manager_id": updated.manager_id},
    )
    return _to_member_out(updated, service)


@router.post("/invite", response_model=MemberOut)
def invite_member(
    payload: InviteRequest,
    db: Session = Depends(get_db),
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    email = str(payload.email).lower()
    existing = db.execute(
        select(User.id).where(User.tenant_id == actor.tenant_id, User.email == email)
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="User already exists")

    try:
        pw_hash = hash_password(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        member = service.invite_member(
            actor,
            member_id=new_member_id(),
            email=email,
            full_name=payload.full_name.strip(),
            role=payload.role,
            password_hash=pw_hash,
            phone=payload.phone,
        )
    except DomainError as exc:
        _raise_http(exc)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="User already exists") from exc

    write_ops_audit_log(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.id,
        action_type=MEMBER_INVITED,
        target_id=member.id,
        metadata={"role": member.role, "email": member.email},
    )
    return _to_member_out(member, service)


@router.delete("/{member_id}", response_model=RemovalResponse)
def remove_member(
    member_id: str,
    db: Session = Depends(get_db),
    actor: MemberNode = Depends(get_current_member),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    try:
        result = service.remove_member(actor, member_id)
    except DomainError as exc:
        _raise_http(exc)

    write_ops_audit_log(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.id,
        action_type=MEMBER_REMOVED,
        target_id=result.removed_id,
        metadata={
            "reparented_count": result.reparented_count,
            "reports_moved_to": result.reports_moved_to,
        },
    )
    return RemovalResponse(
        removed_id=result.removed_id,
        reparented_count=result.reparented_count,
        reports_moved_to=result.reports_moved_to,
    )
