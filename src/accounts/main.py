"""FastAPI application factory.

create_app() returns a configured FastAPI instance. Lifespan handles
startup/shutdown (optional table creation, engine disposal). Middleware,
CORS, error translation and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from accounts import __version__
from accounts.api import api_router
from accounts.config import settings
from accounts.errors import AccountError, InternalError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    from accounts.db.engine import engine

    logger.info(
        "accounts.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    if settings.create_tables_on_startup:
        from accounts.db.models import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("accounts.tables_created")

    yield

    logger.info("accounts.shutdown")
    await engine.dispose()


async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    """Render a typed AccountError as the standard response envelope.

    Only the error's public message leaves the process; internal errors
    are logged with their cause.
    """
    if isinstance(exc, InternalError):
        logger.error(
            "accounts.internal_error",
            path=request.url.path,
            cause=repr(exc.__cause__) if exc.__cause__ else None,
        )
        message = InternalError.public_message
    else:
        message = exc.message
        if exc.status_code == 401:
            # Every auth failure looks the same from outside.
            message = type(exc).public_message

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "statusCode": exc.status_code,
            "success": False,
            "message": message,
            "data": None,
        },
        headers=headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed request bodies as a 400 envelope instead of a 422."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(
        status_code=400,
        content={
            "statusCode": 400,
            "success": False,
            "message": message,
            "data": None,
        },
    )


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Accounts Service",
        description="User accounts, sessions and profile media",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from accounts.middleware.request_id import RequestIdMiddleware
    from accounts.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AccountError, account_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: accounts.main:app)
app = create_app()
