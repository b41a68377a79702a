import uvicorn
from fastapi import FastAPI

from app.api.routes.admin import router as admin_router
from app.api.routes.campaigns import router as campaigns_router
from app.api.routes.health import router as health_router
from app.api.routes.redeem import router as redeem_router
from app.api.routes.redemption_codes import router as redemption_codes_router
from app.api.routes.redemption_urls import router as redemption_urls_router
from app.api.routes.users import router as users_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, app_env=settings.app_env)

    docs_enabled = settings.enable_openapi_docs
    app = FastAPI(
        title="Campaign Redemption API",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.include_router(health_router)
    app.include_router(redeem_router)
    app.include_router(campaigns_router)
    app.include_router(redemption_codes_router)
    app.include_router(admin_router)
    app.include_router(redemption_urls_router)
    app.include_router(users_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
