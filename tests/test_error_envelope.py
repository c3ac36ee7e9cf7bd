"""Tests for the ``{code, result?, message?}`` envelope and error translation."""

import json

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from identityservice.api.error_handling import _error_response, register_exception_handlers
from identityservice.api.schemas import ApiResponse, UserResponse
from identityservice.service.errors import (
    AccessDeniedError,
    AuthenticationError,
    ErrorCode,
    InvalidTokenError,
    NotFoundError,
    ServiceError,
)
from identityservice.storage.errors import ConstraintViolation


class TestApiResponse:
    def test_success_code_default(self):
        assert ApiResponse[str](result="ok").code == 1000

    def test_absent_fields_omitted(self):
        assert ApiResponse[None]().model_dump(exclude_none=True) == {"code": 1000}

    def test_result_uses_camel_case(self):
        envelope = ApiResponse[UserResponse](
            result=UserResponse(id="1", username="tomdoe", first_name="Tom", roles=["USER"])
        )
        body = envelope.model_dump(by_alias=True, exclude_none=True)
        assert body["result"]["firstName"] == "Tom"


class TestErrorResponse:
    def test_error_body_has_code_and_message_only(self):
        response = _error_response(404, 1005, "User not existed")
        assert response.status_code == 404
        assert json.loads(response.body) == {"code": 1005, "message": "User not existed"}


@pytest.mark.parametrize(
    "exc, status, code",
    [
        (AuthenticationError(), 401, 1006),
        (AccessDeniedError(), 403, 1008),
        (NotFoundError(), 404, 1005),
        (InvalidTokenError(), 400, 1007),
        (ServiceError(), 400, 9999),
    ],
)
def test_service_error_status_and_code(exc, status, code):
    assert exc.status_code == status
    assert exc.code == code


def test_error_code_table_is_unique():
    codes = [member.code for member in ErrorCode]
    assert len(codes) == len(set(codes))


@pytest.fixture
def probe_client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/service")
    async def raise_service():
        raise AccessDeniedError()

    @app.get("/constraint")
    async def raise_constraint():
        raise ConstraintViolation("username already exists", {"field": "username"})

    @app.get("/http401")
    async def raise_http_401():
        raise HTTPException(status_code=401, detail="nope")

    @app.get("/http418")
    async def raise_http_418():
        raise HTTPException(status_code=418, detail="teapot")

    @app.get("/boom")
    async def raise_unexpected():
        raise RuntimeError("boom")

    @app.get("/typed/{value}")
    async def typed(value: int):
        return {"value": value}

    return TestClient(app, raise_server_exceptions=False)


class TestHandlers:
    def test_service_error(self, probe_client):
        response = probe_client.get("/service")
        assert response.status_code == 403
        assert response.json() == {"code": 1008, "message": "You do not have permission"}

    def test_constraint_violation_maps_to_user_existed(self, probe_client):
        response = probe_client.get("/constraint")
        assert response.status_code == 400
        assert response.json()["code"] == 1002

    def test_http_401_maps_to_unauthenticated(self, probe_client):
        response = probe_client.get("/http401")
        assert response.status_code == 401
        assert response.json() == {"code": 1006, "message": "Unauthenticated"}

    def test_other_http_status_is_uncategorized(self, probe_client):
        response = probe_client.get("/http418")
        assert response.status_code == 418
        assert response.json()["code"] == 9999

    def test_unknown_route_is_uncategorized(self, probe_client):
        response = probe_client.get("/missing")
        assert response.status_code == 404
        assert response.json()["code"] == 9999

    def test_request_validation_maps_to_invalid_key(self, probe_client):
        response = probe_client.get("/typed/abc")
        assert response.status_code == 400
        assert response.json() == {"code": 1001, "message": "Invalid key"}

    def test_unexpected_exception_is_uncategorized(self, probe_client):
        response = probe_client.get("/boom")
        assert response.status_code == 400
        assert response.json() == {"code": 9999, "message": "Uncategorized error"}
