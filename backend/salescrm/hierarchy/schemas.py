from pydantic import BaseModel, EmailStr, Field

from salescrm.hierarchy.roles import DEFAULT_MEMBER_ROLE


class MemberOut(BaseModel):
    id: str
    tenant_id: str
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    role: str
    role_label: str
    level: int
    manager_id: str | None = None


class HierarchyWarning(BaseModel):
    code: str = "malformed"
    cycle_member_ids: list[str] = []
    dangling_member_ids: list[str] = []
    truncated: bool = False


class TeamResponse(BaseModel):
    tenant_id: str
    members: list[MemberOut]
    warning: HierarchyWarning | None = None


class OrgChartNode(BaseModel):
    member: MemberOut
    reports: list["OrgChartNode"] = []


class OrgChartResponse(BaseModel):
    tenant_id: str
    roots: list[OrgChartNode]
    warning: HierarchyWarning | None = None


class RoleOption(BaseModel):
    role: str
    label: str
    level: int


class AssignableRolesResponse(BaseModel):
    roles: list[RoleOption]


class RoleChangeRequest(BaseModel):
    role: str = Field(min_length=1, max_length=32)


class ManagerAssignRequest(BaseModel):
    # null detaches the member to the top of the hierarchy
    manager_id: str | None = Field(default=None, max_length=64)


class InviteRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=100)
    # bcrypt hard limit = 72 bytes
    password: str = Field(min_length=6, max_length=72)
    role: str = Field(default=DEFAULT_MEMBER_ROLE, min_length=1, max_length=32)
    phone: str | None = Field(default=None, max_length=32)


class RemovalResponse(BaseModel):
    success: bool = True
    removed_id: str
    reparented_count: int
    reports_moved_to: str | None = None
    message: str = "User deleted successfully"
