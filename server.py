from fastapi import FastAPI
import logging

from app.api.errors import register_error_handlers
from app.api.v1.router import api_router
from app.core.config_env import settings

# -------------------- ЛОГИ --------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("server")


def create_app() -> FastAPI:
    app = FastAPI(title="K-Tag locate service")
    register_error_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()


@app.on_event("startup")
def on_startup():
    if not settings.upstream_configured:
        # not fatal: lookups answer with a configuration error until it is set
        logger.warning("K-Tag API credentials not configured")
    logger.info("Locate service started (environment=%s)", settings.ENVIRONMENT)
