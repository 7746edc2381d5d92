from datetime import datetime

from pydantic import BaseModel, Field


class LeadOut(BaseModel):
    id: str
    name: str
    sales_owner_id: str | None = None
    created_at: datetime | None = None


class LeadListResponse(BaseModel):
    tenant_id: str
    leads: list[LeadOut]


class LeadAssignRequest(BaseModel):
    lead_ids: list[str] = Field(min_length=1, max_length=500)
    sales_owner_id: str = Field(min_length=1, max_length=64)


class LeadAssignResponse(BaseModel):
    updated: int
    sales_owner_id: str
