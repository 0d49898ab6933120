from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from claimdesk_api.core.settings import settings
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.approvals import ApprovalSessionRegistry
from .services.claims_client import ClaimsApiClient, build_http_client


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    http_client = build_http_client()

    registry = ApprovalSessionRegistry(
        max_sessions=settings.approval_session_limit,
        idle_seconds=settings.approval_session_idle_seconds,
    )
    app.state.claims_api_client = ClaimsApiClient(http_client)
    app.state.approval_registry = registry
    logger.info(
        "Approval console ready",
        claims_api_base_url=settings.claims_api_base_url,
        session_limit=settings.approval_session_limit,
        debounce_ms=settings.item_search_debounce_ms,
    )

    try:
        yield
    finally:
        closed = registry.close_all()
        if closed:
            logger.info("Closed approval sessions on shutdown", count=closed)
        await http_client.aclose()


def create_app() -> FastAPI:
    """Application factory for the claim approval console API."""
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Claimdesk API",
        summary="Operator console for in-person claim approval",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    if settings.console_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.console_allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=["Authorization", "Content-Type", "X-API-Key"],
        )

    configure_tracing(
        app,
        service_name=settings.service_name,
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"], include_in_schema=False)
    async def root_health() -> dict[str, str]:
        return {"status": "ok", "environment": settings.environment, "version": APP_VERSION}

    return app
