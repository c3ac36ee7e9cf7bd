from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header

from identityservice.api.schemas import (
    ApiResponse,
    AuthenticationRequest,
    AuthenticationResponse,
    IntrospectRequest,
    IntrospectResponse,
    LogoutRequest,
    RefreshRequest,
    RoleRequest,
    RoleResponse,
    UserCreationRequest,
    UserResponse,
    UserUpdateRequest,
)
from identityservice.service.auth import TokenPair
from identityservice.service.authorization import AuthContext
from identityservice.service.runtime import get_runtime
from identityservice.storage.models import Role, User

router = APIRouter()


async def get_caller(authorization: Optional[str] = Header(None)) -> AuthContext:
    runtime = get_runtime()
    return runtime.auth.resolve_caller(authorization)


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        dob=user.dob,
        roles=sorted(user.roles),
    )


def _role_to_response(role: Role) -> RoleResponse:
    return RoleResponse(name=role.name, description=role.description)


def _tokens_to_response(tokens: TokenPair) -> AuthenticationResponse:
    return AuthenticationResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        authenticated=tokens.authenticated,
    )


@router.post(
    "/users",
    response_model=ApiResponse[UserResponse],
    response_model_exclude_none=True,
    tags=["users"],
)
async def create_user(body: UserCreationRequest):
    """Register a new account with the USER role."""
    runtime = get_runtime()
    user = runtime.users.create_user(
        body.username,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        dob=body.dob,
    )
    return ApiResponse(result=_user_to_response(user))


@router.get(
    "/users",
    response_model=ApiResponse[List[UserResponse]],
    response_model_exclude_none=True,
    tags=["users"],
)
async def list_users(caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    users = runtime.users.list_users(caller)
    return ApiResponse(result=[_user_to_response(u) for u in users])


# Must stay above /users/{user_id} so "myInfo" is not taken as an id
@router.get(
    "/users/myInfo",
    response_model=ApiResponse[UserResponse],
    response_model_exclude_none=True,
    tags=["users"],
)
async def get_my_info(caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    return ApiResponse(result=_user_to_response(runtime.users.get_my_info(caller)))


@router.get(
    "/users/{user_id}",
    response_model=ApiResponse[UserResponse],
    response_model_exclude_none=True,
    tags=["users"],
)
async def get_user(user_id: str, caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    user = runtime.users.get_user(caller, user_id)
    return ApiResponse(result=_user_to_response(user))


@router.put(
    "/users/{user_id}",
    response_model=ApiResponse[UserResponse],
    response_model_exclude_none=True,
    tags=["users"],
)
async def update_user(
    user_id: str,
    body: UserUpdateRequest,
    caller: AuthContext = Depends(get_caller),
):
    """Partially update a profile; only the owner or an admin may do this.

    Changing ``roles`` additionally requires the ADMIN role.
    """
    runtime = get_runtime()
    user = runtime.users.update_user(
        caller,
        user_id,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        dob=body.dob,
        roles=body.roles,
    )
    return ApiResponse(result=_user_to_response(user))


@router.delete(
    "/users/{user_id}",
    response_model=ApiResponse[str],
    response_model_exclude_none=True,
    tags=["users"],
)
async def delete_user(user_id: str, caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    await runtime.users.delete_user(caller, user_id)
    return ApiResponse(result="User has been deleted")


@router.post(
    "/auth/token",
    response_model=ApiResponse[AuthenticationResponse],
    response_model_exclude_none=True,
    tags=["auth"],
)
async def authenticate(body: AuthenticationRequest):
    """Exchange username and password for an access and refresh token pair.

    Raises:
        404: unknown username
        401: wrong password
    """
    runtime = get_runtime()
    tokens = await runtime.auth.authenticate(body.username, body.password)
    return ApiResponse(result=_tokens_to_response(tokens))


@router.post(
    "/auth/introspect",
    response_model=ApiResponse[IntrospectResponse],
    response_model_exclude_none=True,
    tags=["auth"],
)
async def introspect(body: IntrospectRequest):
    runtime = get_runtime()
    valid = runtime.auth.introspect(body.token)
    return ApiResponse(result=IntrospectResponse(valid=valid))


@router.post(
    "/auth/refresh",
    response_model=ApiResponse[AuthenticationResponse],
    response_model_exclude_none=True,
    tags=["auth"],
)
async def refresh(body: RefreshRequest):
    """Issue a new access token; the refresh token is returned unchanged."""
    runtime = get_runtime()
    tokens = await runtime.auth.refresh(body.refresh_token)
    return ApiResponse(result=_tokens_to_response(tokens))


@router.post(
    "/auth/logout",
    response_model=ApiResponse[None],
    response_model_exclude_none=True,
    tags=["auth"],
)
async def logout(body: LogoutRequest):
    runtime = get_runtime()
    await runtime.auth.logout(body.refresh_token)
    return ApiResponse()


@router.post(
    "/roles",
    response_model=ApiResponse[RoleResponse],
    response_model_exclude_none=True,
    tags=["roles"],
)
async def create_role(body: RoleRequest, caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    role = runtime.roles.create(caller, body.name, body.description)
    return ApiResponse(result=_role_to_response(role))


@router.get(
    "/roles",
    response_model=ApiResponse[List[RoleResponse]],
    response_model_exclude_none=True,
    tags=["roles"],
)
async def list_roles(caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    return ApiResponse(result=[_role_to_response(r) for r in runtime.roles.list(caller)])


@router.delete(
    "/roles/{role}",
    response_model=ApiResponse[None],
    response_model_exclude_none=True,
    tags=["roles"],
)
async def delete_role(role: str, caller: AuthContext = Depends(get_caller)):
    runtime = get_runtime()
    runtime.roles.delete(caller, role)
    return ApiResponse()
