"""Structured error rendering for gateway and registry applications."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from servicegate.domain import GatewayError, UpstreamError

_VALIDATION_STATUS_CODE = 422


def api_render_error(error: GatewayError, path: str) -> Response:
    """Render a typed error as a structured response.

    A backend error that carried its own body is relayed verbatim with the
    backend status; every other error becomes a JSON object with status,
    classification code and message.

    Args:
        error: Typed gateway error.
        path: Request path included for diagnostics.

    Returns:
        Response: Structured error response.
    """

    if isinstance(error, UpstreamError) and error.upstream_body is not None and error.upstream_status:
        return Response(
            content=error.upstream_body,
            status_code=error.upstream_status,
            media_type=error.upstream_media_type,
        )

    payload = error.to_payload()
    payload["path"] = path
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    return JSONResponse(content=payload, status_code=error.status_code)


def api_install_error_handlers(application: FastAPI) -> None:
    """Register exception handlers translating typed errors into structured responses."""

    @application.exception_handler(GatewayError)
    async def api_gateway_error_handler(request: Request, error: GatewayError) -> Response:
        return api_render_error(error, request.url.path)

    @application.exception_handler(RequestValidationError)
    async def api_validation_error_handler(request: Request, error: RequestValidationError) -> JSONResponse:
        payload = {
            "status": "error",
            "status_code": _VALIDATION_STATUS_CODE,
            "code": "VALIDATION_FAILED",
            "error": "Unprocessable Entity",
            "message": "request validation failed",
            "details": jsonable_encoder(error.errors(), exclude={"input", "ctx", "url"}),
            "path": request.url.path,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return JSONResponse(content=payload, status_code=_VALIDATION_STATUS_CODE)
