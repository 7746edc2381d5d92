from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    # Optional on workspace hosts: the resolved tenant wins.
    tenant_id: str | None = Field(default=None, max_length=64)
    email: EmailStr
    # prevent bcrypt crash on long input
    password: str = Field(min_length=1, max_length=72)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"


class MeResponse(BaseModel):
    id: str
    tenant_id: str
    email: EmailStr
    full_name: str | None = None
    role: str
    role_label: str
    manager_id: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=20)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(min_length=20)
