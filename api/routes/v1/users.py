"""
api/routes/v1/users.py -- Account REST endpoints.

Routes:
  POST   /api/v1/users              -- register; returns id and the initial code (once)
  PATCH  /api/v1/users/name         -- rename (name + password required)
  PATCH  /api/v1/users/password     -- change password; returns the new code
  DELETE /api/v1/users              -- delete account (name + password required)
  GET    /api/v1/users              -- page through ids or names (?kind=id|name&size=&page=)
  GET    /api/v1/users/by-name/{name} -- public name -> id lookup
  GET    /api/v1/users/{user_id}    -- public id -> name lookup

Every mutating route authenticates name/password through the core first and
then calls the id-keyed facade operation. Handlers are plain `def` so FastAPI
runs them in its threadpool -- bcrypt and Argon2 are deliberately slow and
must not block the event loop.

Error mapping lives in api/main.py (VaultError exception handler).
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query, Request

from api.models import (
    ChangePasswordRequest,
    CodeResponse,
    Credentials,
    RegisteredResponse,
    RenameRequest,
    UserIdResponse,
    UserNameResponse,
    UserPageResponse,
)
from auth.service import AuthService

router = APIRouter()


@router.post("/users", response_model=RegisteredResponse, status_code=201)
def register(request: Request, body: Credentials) -> RegisteredResponse:
    """Create an account. The code in the response is shown ONCE."""
    service: AuthService = request.app.state.service
    user_id, code = service.register_with_code(body.name, body.password)
    return RegisteredResponse(id=user_id, name=body.name, code=code)


@router.patch("/users/name", response_model=UserNameResponse)
def rename(request: Request, body: RenameRequest) -> UserNameResponse:
    service: AuthService = request.app.state.service
    user_id = service.authenticate(body.name, body.password)
    service.rename(user_id, body.new_name)
    return UserNameResponse(id=user_id, name=body.new_name)


@router.patch("/users/password", response_model=CodeResponse)
def change_password(request: Request, body: ChangePasswordRequest) -> CodeResponse:
    """Change password. The previous code stops working; the new one is returned."""
    service: AuthService = request.app.state.service
    user_id = service.authenticate(body.name, body.password)
    return CodeResponse(code=service.change_password(user_id, body.new_password))


@router.delete("/users", status_code=204)
def remove(request: Request, body: Credentials) -> None:
    service: AuthService = request.app.state.service
    user_id = service.authenticate(body.name, body.password)
    service.remove(user_id)


@router.get("/users", response_model=UserPageResponse)
def list_users(
    request: Request,
    kind: Literal["id", "name"] = "id",
    size: int = Query(default=20),
    page: int = Query(default=0),
) -> UserPageResponse:
    """Page through users ordered by name. Bounds are validated by the core."""
    service: AuthService = request.app.state.service
    items = service.page_ids(size, page) if kind == "id" else service.page_names(size, page)
    return UserPageResponse(kind=kind, size=size, page=page, items=items)


@router.get("/users/by-name/{name}", response_model=UserIdResponse)
def find_by_name(request: Request, name: str) -> UserIdResponse:
    service: AuthService = request.app.state.service
    return UserIdResponse(id=service.find_by_name(name))


@router.get("/users/{user_id}", response_model=UserNameResponse)
def find_by_id(request: Request, user_id: str) -> UserNameResponse:
    service: AuthService = request.app.state.service
    return UserNameResponse(id=user_id, name=service.find_by_id(user_id))
