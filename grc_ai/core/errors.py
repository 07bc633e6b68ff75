from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


@dataclass
class ErrorEnvelope:
    """Legacy in-band error body: the message only, no structured code."""

    code: str
    message: str
    type: str
    request_id: str

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.message}

    def headers(self) -> dict[str, str]:
        return {
            **CORS_HEADERS,
            "x-request-id": self.request_id,
            "x-error-code": self.code,
            "x-error-type": self.type,
        }


class AppError(Exception):
    def __init__(self, status_code: int, code: str, error_type: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.error_type = error_type
        self.message = message


class UnauthenticatedError(AppError):
    def __init__(self, message: str = "Invalid authorization"):
        super().__init__(401, "unauthenticated", "auth", message)


class ProfileNotFoundError(AppError):
    def __init__(self, message: str = "User has no tenant"):
        super().__init__(404, "profile_not_found", "auth", message)


class NoActiveProviderError(AppError):
    def __init__(self, tenant_id: str, visible_count: int):
        super().__init__(
            503,
            "no_active_provider",
            "provider",
            f"No active AI provider configured for tenant {tenant_id} "
            f"({visible_count} provider(s) visible)",
        )
        self.tenant_id = tenant_id
        self.visible_count = visible_count


class UnsupportedProviderTypeError(AppError):
    def __init__(self, provider_type: str):
        super().__init__(
            501,
            "unsupported_provider_type",
            "provider",
            f"Unsupported provider type: {provider_type}",
        )
        self.provider_type = provider_type


class EmptyResponseError(AppError):
    def __init__(self, provider_type: str):
        super().__init__(
            502,
            "empty_response",
            "provider",
            f"Empty response from {provider_type} provider",
        )
        self.provider_type = provider_type


def request_id_from_request(request: Request) -> str:
    state_id = getattr(request.state, "request_id", None)
    header_id = request.headers.get("x-request-id")
    return state_id or header_id or str(uuid4())


def app_error_response(
    status_code: int,
    code: str,
    error_type: str,
    message: str,
    request_id: str,
    strict_status_codes: bool = False,
) -> JSONResponse:
    """Render an error in the ``{"error": message}`` shape.

    Existing callers only look at the body, so the status is 200 unless strict
    mode is enabled. The ``x-error-code`` header is always present.
    """
    envelope = ErrorEnvelope(code=code, message=message, type=error_type, request_id=request_id)
    return JSONResponse(
        status_code=status_code if strict_status_codes else 200,
        content=envelope.as_dict(),
        headers=envelope.headers(),
    )
