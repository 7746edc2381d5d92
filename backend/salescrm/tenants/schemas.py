from pydantic import BaseModel, Field


class TenantPublicOut(BaseModel):
    id: str
    name: str
    slug: str
    logo_url: str | None = None
    primary_color: str | None = None
    workspace_url: str


class ResolutionErrorOut(BaseModel):
    code: str
    message: str
    retryable: bool


class ResolutionOut(BaseModel):
    host: str
    host_class: str
    status: str
    subdomain: str | None = None
    tenant: TenantPublicOut | None = None
    error: ResolutionErrorOut | None = None


class DomainSaveRequest(BaseModel):
    # empty / null clears the custom domain
    custom_domain: str | None = Field(default=None, max_length=255)


class DomainStatusOut(BaseModel):
    tenant_id: str
    custom_domain: str | None = None
    domain_status: str | None = None


class DnsRecordOut(BaseModel):
    type: str
    name: str
    data: str


class DomainVerifyOut(DomainStatusOut):
    dns_valid: bool
    records: list[DnsRecordOut] = []
    message: str


class DeactivateResponse(BaseModel):
    tenant_id: str
    is_active: bool
