from pydantic import BaseModel, EmailStr, Field


class BootstrapRequest(BaseModel):
    company_id: str = Field(min_length=3, max_length=64, description="Company ID like c_acme")
    company_name: str = Field(min_length=2, max_length=255)
    slug: str = Field(
        min_length=1,
        max_length=63,
        pattern=r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$",
        description="Workspace subdomain label, e.g. acme -> acme.<primary domain>",
    )
    owner_id: str = Field(min_length=3, max_length=64, description="Owner user ID like u_owner")
    owner_email: EmailStr
    owner_full_name: str | None = Field(default=None, max_length=100)
    owner_password: str = Field(min_length=8, max_length=72)


class BootstrapCompanyOut(BaseModel):
    id: str
    name: str
    slug: str
    workspace_url: str


class BootstrapOwnerOut(BaseModel):
    id: str
    tenant_id: str
    email: str
    role: str


class BootstrapResponse(BaseModel):
    company: BootstrapCompanyOut
    owner: BootstrapOwnerOut
    access_token: str
    token_type: str = "bearer"
