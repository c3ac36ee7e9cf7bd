from __future__ import annotations

from datetime import date
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from identityservice.service.errors import SUCCESS_CODE

T = TypeVar("T")


class CamelModel(BaseModel):
    """Wire models use camelCase names; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope shared by every endpoint.

    ``code`` is 1000 on success; ``result`` and ``message`` are omitted from
    the JSON when unset.
    """

    code: int = SUCCESS_CODE
    result: Optional[T] = None
    message: Optional[str] = None


class UserCreationRequest(CamelModel):
    username: str = Field(..., max_length=255)
    password: str = Field(..., max_length=1024)
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    dob: Optional[date] = None


class UserUpdateRequest(CamelModel):
    password: Optional[str] = Field(default=None, max_length=1024)
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    dob: Optional[date] = None
    roles: Optional[List[str]] = None


class UserResponse(CamelModel):
    id: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    dob: Optional[date] = None
    roles: List[str] = Field(default_factory=list)


class AuthenticationRequest(CamelModel):
    username: str
    password: str


class AuthenticationResponse(CamelModel):
    access_token: str
    refresh_token: str
    authenticated: bool


class IntrospectRequest(CamelModel):
    token: str


class IntrospectResponse(CamelModel):
    valid: bool


class RefreshRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    refresh_token: str


class RoleRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=64, pattern=r"^\S+$")
    description: Optional[str] = Field(default=None, max_length=255)


class RoleResponse(CamelModel):
    name: str
    description: Optional[str] = None
