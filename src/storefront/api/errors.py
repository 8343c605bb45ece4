"""Maps engine errors to HTTP responses.

Protean's own ValidationError / ObjectNotFoundError are handled by
``protean.integrations.fastapi.register_exception_handlers``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.errors import ErrorKind, StorefrontError

logger = structlog.get_logger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTEGRITY: 400,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
}


def status_for(error: StorefrontError) -> int:
    return _STATUS_BY_KIND.get(error.kind, 400)


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log("Request rejected", path=request.url.path, error=type(exc).__name__, kind=exc.kind.value)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_storefront_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
