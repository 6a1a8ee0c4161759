import uvicorn
from fastapi import FastAPI

from sweepstakes.api.route_access import parse_public_paths, validate_route_access
from sweepstakes.api.routes.email_migration import router as email_migration_router
from sweepstakes.api.routes.entries import router as entries_router
from sweepstakes.api.routes.everflow_webhook import router as everflow_webhook_router
from sweepstakes.api.routes.health import router as health_router
from sweepstakes.api.routes.migration_automation import router as migration_automation_router
from sweepstakes.core.config import get_settings
from sweepstakes.core.logging import configure_logging

DEFAULT_PUBLIC_ROUTE_PATHS = "/health,/ready,/live,/webhooks/everflow,/entries"


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.app_env != "dev")
    docs_enabled = bool(getattr(settings, "enable_openapi_docs", True))

    app = FastAPI(
        title="Sweepstakes Referral API",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.include_router(health_router)
    app.include_router(everflow_webhook_router)
    app.include_router(entries_router)
    app.include_router(email_migration_router)
    app.include_router(migration_automation_router)

    validate_route_access(
        app,
        parse_public_paths(getattr(settings, "public_route_paths", DEFAULT_PUBLIC_ROUTE_PATHS)),
    )
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "sweepstakes.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
