"""FastAPI dependencies for the URL shortener.

Shared resources (settings, logger, storage, allocator, metrics) are built
outside the application and stored on ``app.state`` by ``create_app``; these
dependencies hand them to route handlers together with a per-request logging
context. The write path is guarded by ``require_credentials``.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from shortener.allocator import AliasAllocator
from shortener.config import Settings
from shortener.logger import ContextAdapter
from shortener.metrics import ServiceMetrics
from shortener.storage import Storage
from shortener.url_service import RedirectResolver, URLRegistrationService

__all__ = [
    "RequestContext",
    "get_registration_service",
    "get_request_context",
    "get_resolver",
    "get_settings",
    "require_credentials",
]

REALM = "url-shortener"

_basic_auth = HTTPBasic(realm=REALM)


@dataclass
class RequestContext:
    """Per-request view of the shared resources.

    Attributes:
        storage: Shared storage
        metrics: Application metrics
        request_id: Identifier set by the request-id middleware
        start_time: Request start timestamp
    """

    storage: Storage
    metrics: ServiceMetrics
    base_logger: logging.Logger
    request_id: str
    start_time: float = field(default_factory=time.perf_counter)

    @property
    def logger(self) -> logging.LoggerAdapter:
        return ContextAdapter(self.base_logger, {"request_id": self.request_id})

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_request_context(request: Request) -> RequestContext:
    state = request.app.state
    return RequestContext(
        storage=state.storage,
        metrics=state.metrics,
        base_logger=state.logger,
        request_id=getattr(request.state, "request_id", "-"),
    )


def get_registration_service(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
) -> URLRegistrationService:
    allocator: AliasAllocator = request.app.state.allocator
    logger = ctx.logger
    return URLRegistrationService(ctx.storage, allocator.with_logger(logger), logger, ctx.metrics)


def get_resolver(ctx: RequestContext = Depends(get_request_context)) -> RedirectResolver:
    return RedirectResolver(ctx.storage, ctx.logger, ctx.metrics)


def require_credentials(
    credentials: HTTPBasicCredentials = Depends(_basic_auth),
    settings: Settings = Depends(get_settings),
) -> str:
    """Check HTTP Basic credentials against the configured user.

    Returns:
        str: The authenticated user name.

    Raises:
        HTTPException: 401 if the credentials are wrong or no user is configured.
    """
    expected_user = settings.HTTP_USER.encode("utf-8")
    expected_password = settings.HTTP_PASSWORD.encode("utf-8")
    user_ok = secrets.compare_digest(credentials.username.encode("utf-8"), expected_user)
    password_ok = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password)

    if not (expected_user and user_ok and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid credentials",
            headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
        )
    return credentials.username
