import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reelgen.api import artifacts, generate, rate_limit, sessions, system
from reelgen.config import Settings, get_settings
from reelgen.exceptions import RateLimitExceededError, ReelgenError
from reelgen.schemas.generation import RateLimitExceededResponse
from reelgen.services.container import ServiceContainer, build_services

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(app.state.settings)
    services: ServiceContainer = app.state.services
    services.sweeper.start()
    yield
    # Shutdown; running compositions are not cancelled
    await services.sweeper.stop()
    active = services.jobs.active_ids()
    if active:
        logger.warning(f"Shutting down with {len(active)} job(s) still running")


def _rate_limit_content(exc: RateLimitExceededError) -> dict:
    body = RateLimitExceededResponse(
        limit_type=exc.limit_type,
        details=exc.details,
        reset_time=exc.reset_time.isoformat() if exc.reset_time else None,
        message=exc.message,
        detail=exc.message,
    )
    return body.model_dump(by_alias=True)


async def reelgen_exception_handler(request: Request, exc: ReelgenError) -> JSONResponse:
    if isinstance(exc, RateLimitExceededError):
        headers = {}
        if exc.reset_time is not None:
            retry_after = int((exc.reset_time - datetime.now(timezone.utc)).total_seconds())
            headers["Retry-After"] = str(max(1, retry_after))
        return JSONResponse(
            status_code=exc.status_code,
            content=_rate_limit_content(exc),
            headers=headers,
        )

    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.to_error_info()},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Global exception handler to ensure errors return proper JSON
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(
    app_settings: Settings | None = None,
    services: ServiceContainer | None = None,
) -> FastAPI:
    app_settings = app_settings or settings
    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.services = services

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ReelgenError, reelgen_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Routers
    app.include_router(generate.router, prefix="/api", tags=["generate"])
    app.include_router(artifacts.router, prefix="/api", tags=["artifacts"])
    app.include_router(sessions.router, prefix="/api", tags=["sessions"])
    app.include_router(rate_limit.router, prefix="/api", tags=["rate-limit"])
    app.include_router(system.router, prefix="/api", tags=["system"])

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "version": app_settings.app_version, "git_hash": app_settings.git_hash}

    return app


app = create_app()
