"""Exception Handlers.

Bridge 예외를 HTTP 응답으로 변환합니다.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from apps.wa_bridge.domain.exceptions import (
    BridgeError,
    DependencyUnavailableError,
    MalformedPayloadError,
    ValidationError,
)


def register_exception_handlers(app: FastAPI) -> None:
    """예외 핸들러 등록."""

    @app.exception_handler(DependencyUnavailableError)
    async def dependency_unavailable_handler(
        request: Request, exc: DependencyUnavailableError
    ):
        return JSONResponse(
            status_code=503,
            content={"detail": exc.message, "code": "DEPENDENCY_UNAVAILABLE"},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": exc.message, "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(MalformedPayloadError)
    async def malformed_payload_handler(request: Request, exc: MalformedPayloadError):
        return JSONResponse(
            status_code=400,
            content={"detail": exc.message, "code": "MALFORMED_PAYLOAD"},
        )

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        return JSONResponse(
            status_code=500,
            content={"detail": exc.message, "code": "BRIDGE_ERROR"},
        )
