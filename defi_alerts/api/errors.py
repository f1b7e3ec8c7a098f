"""Map service exceptions onto HTTP responses.

- ValidationError -> 400
- NotFoundError -> 404
- RateLimitError -> 429 with ``Retry-After`` and ``retry_after`` in the body
- OperationTimeoutError -> 504
- UpstreamError / DispatchError -> 502
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from defi_alerts.core.errors import (
    AlertServiceError,
    DispatchError,
    NotFoundError,
    OperationTimeoutError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first
_STATUS_CODES: list[tuple[type[AlertServiceError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (OperationTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (DispatchError, status.HTTP_502_BAD_GATEWAY),
]


def status_code_for(exc: AlertServiceError) -> int:
    for exc_type, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def alert_service_error_handler(request: Request, exc: AlertServiceError) -> JSONResponse:
    code = status_code_for(exc)
    body: dict = {"status": "error", "error": str(exc), "type": type(exc).__name__}
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitError):
        body["retry_after"] = exc.retry_after
        headers["Retry-After"] = str(exc.retry_after)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AlertServiceError, alert_service_error_handler)
