from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)
    # optional: reject the login unless the user belongs to this tenant
    tenant_slug: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    tenant_id: str | None
    tenant_slug: str | None
    roles: list[str]
    permissions: list[str]


class MeOut(BaseModel):
    id: str
    email: str
    full_name: str
    is_active: bool
    tenant_id: str | None
    employee_id: str | None
    evaluator_id: str | None
    roles: list[str]
    permissions: list[str]


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    full_name: str = Field(min_length=1, max_length=200)
    password: str = Field(min_length=8, max_length=128)
    role: str = "Participant"
    employee_id: str | None = None


class UserOut(BaseModel):
    id: str
    email: str
    full_name: str
    is_active: bool
    tenant_id: str | None
    employee_id: str | None
    roles: list[str]
