"""HTTP mapping of the domain error taxonomy.

``ValidationError`` is handled by protean's own FastAPI integration (400).
The remaining domain errors map to:
- NotFoundError → 404
- IllegalStateError → 409
- SignatureVerificationError → 401
- ExternalProviderError → 502
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from orderflow.exceptions import (
    ExternalProviderError,
    IllegalStateError,
    NotFoundError,
    SignatureVerificationError,
)

_STATUS_CODES = {
    NotFoundError: 404,
    IllegalStateError: 409,
    SignatureVerificationError: 401,
    ExternalProviderError: 502,
}


def _handler(status_code: int):
    async def handle(request: Request, exc: Exception) -> JSONResponse:
        content = {"error": str(exc)}
        if isinstance(exc, ExternalProviderError):
            content["provider"] = exc.provider
        return JSONResponse(status_code=status_code, content=content)

    return handle


def register_error_handlers(app: FastAPI) -> None:
    """Register handlers for protean and orderflow errors on ``app``."""
    register_exception_handlers(app)
    for exc_class, status_code in _STATUS_CODES.items():
        app.add_exception_handler(exc_class, _handler(status_code))
