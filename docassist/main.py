from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from .api.routes import router as api_router
from .core.config import get_settings
from .core.errors import DocAssistError
from .core.logging import configure_logging, get_logger
from .dependencies import get_services_singleton, shutdown_services

settings = get_settings()
configure_logging(settings.observability.log_level, log_format=settings.observability.log_format)
logger = get_logger(name=__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    services = get_services_singleton(settings)
    app.state.services = services
    logger.info(
        "orchestrator_started",
        environment=settings.environment,
        max_poll_attempts=settings.orchestration.max_poll_attempts,
        tools=services.orchestrator.tools(),
    )
    try:
        yield
    finally:
        await shutdown_services()
        logger.info("services_closed")


app = FastAPI(title="DocAssist Orchestrator", version="0.1.0", lifespan=app_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.exception_handler(DocAssistError)
async def docassist_error_handler(request: Request, exc: DocAssistError) -> JSONResponse:
    logger.error("request_failed", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal_error", "message": str(exc)},
    )


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": "DocAssist orchestrator running"}


if settings.observability.prometheus_enabled:

    @app.get("/metrics", tags=["observability"])
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
