"""API route definitions for the URL shortener.

Endpoints:
    GET  /health:   Storage health check.
    POST /url:      Register a URL (HTTP Basic auth).
    GET  /{alias}:  302 redirect to the registered URL.

Error Mapping
=============
::
    ValidationError           → 400
    ConflictError             → 409
    NotFoundError             → 404
    AllocationExhaustedError  → 500
    StorageError              → 500

Response bodies carry a fixed message per kind; the exception itself only
goes to the log.

Key Behaviours
===============
- Only the write path requires credentials.
- Redirects use 302 Found.
- /health is declared before /{alias} so it is never treated as an alias.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, RedirectResponse

from shortener.dependencies import (
    RequestContext,
    get_registration_service,
    get_request_context,
    get_resolver,
    require_credentials,
)
from shortener.enums import HealthStatus
from shortener.errors import (
    AllocationExhaustedError,
    ConflictError,
    NotFoundError,
    ShortenerError,
    StorageError,
    ValidationError,
)
from shortener.schemas import ErrorResponse, HealthResponse, URLCreate, URLCreated
from shortener.url_service import RedirectResolver, URLRegistrationService

__all__ = ["router"]

router = APIRouter()

_ERROR_STATUS: list[tuple[type[ShortenerError], int, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "invalid request"),
    (ConflictError, status.HTTP_409_CONFLICT, "alias already exists"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "alias not found"),
    (AllocationExhaustedError, status.HTTP_500_INTERNAL_SERVER_ERROR, "failed to allocate alias"),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR, "internal error"),
]


def _http_error(exc: ShortenerError) -> HTTPException:
    for error_type, status_code, message in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
    tags=["health"],
)
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> JSONResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await ctx.storage.ping()
    except StorageError as exc:
        ctx.logger.error(f"Database health check failed: {exc}")
        db_status = HealthStatus.UNHEALTHY

    body = HealthResponse(status=db_status, database=db_status)
    status_code = status.HTTP_200_OK if db_status is HealthStatus.HEALTHY else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.post(
    "/url",
    response_model=URLCreated,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    tags=["urls"],
)
async def save_url(
    payload: URLCreate,
    user: str = Depends(require_credentials),
    ctx: RequestContext = Depends(get_request_context),
    service: URLRegistrationService = Depends(get_registration_service),
) -> URLCreated:
    try:
        alias = await service.register(payload.url, payload.alias)
    except ValidationError as exc:
        ctx.logger.info(f"URL registration rejected: {exc}", extra={"user": user})
        raise _http_error(exc) from exc
    except ConflictError as exc:
        ctx.logger.info(f"URL registration conflict: {exc}", extra={"user": user})
        raise _http_error(exc) from exc
    except ShortenerError as exc:
        ctx.logger.error(
            f"URL registration failed: {exc}",
            extra={"user": user, "duration_ms": ctx.get_duration()},
        )
        raise _http_error(exc) from exc

    ctx.logger.info(
        "URL saved",
        extra={"alias": alias, "user": user, "duration_ms": ctx.get_duration()},
    )
    return URLCreated(alias=alias)


@router.get(
    "/{alias}",
    status_code=status.HTTP_302_FOUND,
    response_class=RedirectResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["redirect"],
)
async def redirect(
    alias: str,
    ctx: RequestContext = Depends(get_request_context),
    resolver: RedirectResolver = Depends(get_resolver),
) -> RedirectResponse:
    try:
        target = await resolver.resolve(alias)
    except NotFoundError as exc:
        ctx.logger.info("Alias not found", extra={"alias": alias})
        raise _http_error(exc) from exc
    except ShortenerError as exc:
        ctx.logger.error(f"Failed to resolve alias: {exc}", extra={"alias": alias})
        raise _http_error(exc) from exc

    ctx.logger.info("Redirecting", extra={"alias": alias, "target": target})
    return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)
