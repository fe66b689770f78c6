"""
API request and response models for TokenVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only check shape (types, presence, sane upper bounds). Name
format and password length rules belong to the core and are enforced there,
so the API and the CLI report the same errors for the same input.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Body for POST /users, POST /tokens, POST /tokens/recover, DELETE /users."""

    name: str = Field(max_length=255)
    password: str = Field(max_length=255)


class RenameRequest(Credentials):
    new_name: str = Field(max_length=255)


class ChangePasswordRequest(Credentials):
    new_password: str = Field(max_length=255)


class CodeRequest(BaseModel):
    """Body carrying a bare code. Codes travel in bodies, never in URLs."""

    code: str = Field(max_length=255)


class PrivilegeKeyRequest(CodeRequest):
    key: str = Field(min_length=1, max_length=255)


class PrivilegeUnsetRequest(PrivilegeKeyRequest):
    auth: str = Field(max_length=255)


class PrivilegeSetRequest(PrivilegeUnsetRequest):
    value: str = Field(max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisteredResponse(BaseModel):
    """Returned once at registration. The code is not retrievable without the password."""

    id: str
    name: str
    code: str


class UserIdResponse(BaseModel):
    id: str


class UserNameResponse(BaseModel):
    id: str
    name: str


class UserPageResponse(BaseModel):
    kind: Literal["id", "name"]
    size: int
    page: int
    items: list[str]


class CodeResponse(BaseModel):
    code: str


class PrivilegeValueResponse(BaseModel):
    key: str
    value: Optional[str]


class PrivilegeListResponse(BaseModel):
    privileges: dict[str, str]


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
