"""
api/routes/v1/privileges.py -- Privilege REST endpoints.

Routes:
  PUT    /api/v1/privileges        -- set key=value on a code (gate: auth)
  DELETE /api/v1/privileges        -- unset key on a code (gate: auth)
  POST   /api/v1/privileges/check  -- read one value (null when absent)
  POST   /api/v1/privileges/list   -- read every key/value of a code

`auth` is the requester's own code, or the process root secret. The gate in
auth/gate.py decides; this module only forwards.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.models import (
    CodeRequest,
    PrivilegeKeyRequest,
    PrivilegeListResponse,
    PrivilegeSetRequest,
    PrivilegeUnsetRequest,
    PrivilegeValueResponse,
)
from auth.service import AuthService

router = APIRouter()


@router.put("/privileges", status_code=204)
def set_privilege(request: Request, body: PrivilegeSetRequest) -> None:
    service: AuthService = request.app.state.service
    service.set_privilege(body.auth, body.code, body.key, body.value)


@router.delete("/privileges", status_code=204)
def unset_privilege(request: Request, body: PrivilegeUnsetRequest) -> None:
    service: AuthService = request.app.state.service
    service.unset_privilege(body.auth, body.code, body.key)


@router.post("/privileges/check", response_model=PrivilegeValueResponse)
def check_privilege(request: Request, body: PrivilegeKeyRequest) -> PrivilegeValueResponse:
    service: AuthService = request.app.state.service
    return PrivilegeValueResponse(key=body.key, value=service.get_privilege(body.code, body.key))


@router.post("/privileges/list", response_model=PrivilegeListResponse)
def list_privileges(request: Request, body: CodeRequest) -> PrivilegeListResponse:
    service: AuthService = request.app.state.service
    return PrivilegeListResponse(privileges=service.list_privileges(body.code))
