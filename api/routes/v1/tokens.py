"""
api/routes/v1/tokens.py -- Token REST endpoints.

Routes:
  POST /api/v1/tokens           -- issue a fresh code (name + password); old code dies
  POST /api/v1/tokens/recover   -- return the current code (name + password)
  POST /api/v1/tokens/identify  -- code -> owner id (no password)

Codes only ever travel in request/response bodies. All responses carrying a
code are marked Cache-Control: no-store.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from api.models import CodeRequest, CodeResponse, Credentials, UserIdResponse
from auth.service import AuthService

router = APIRouter()


@router.post("/tokens", response_model=CodeResponse, status_code=201)
def issue(request: Request, response: Response, body: Credentials) -> CodeResponse:
    """Replace the caller's code. issue_token() checks the password itself."""
    service: AuthService = request.app.state.service
    user_id = service.find_by_name(body.name)
    response.headers["Cache-Control"] = "no-store"
    return CodeResponse(code=service.issue_token(user_id, body.password))


@router.post("/tokens/recover", response_model=CodeResponse)
def recover(request: Request, response: Response, body: Credentials) -> CodeResponse:
    service: AuthService = request.app.state.service
    user_id = service.find_by_name(body.name)
    response.headers["Cache-Control"] = "no-store"
    return CodeResponse(code=service.recover_token(user_id, body.password))


@router.post("/tokens/identify", response_model=UserIdResponse)
def identify(request: Request, body: CodeRequest) -> UserIdResponse:
    service: AuthService = request.app.state.service
    return UserIdResponse(id=service.identify(body.code))
