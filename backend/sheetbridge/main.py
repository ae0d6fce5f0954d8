"""
SheetBridge service
Spreadsheet <-> JSON conversion with optional AI clean-up
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env file

from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI

from sheetbridge import __version__
from sheetbridge.config.settings import get_settings
from sheetbridge.middleware.error_handler import install_error_handlers
from sheetbridge.routers.conversion_router import router as conversion_router
from sheetbridge.services.container import get_container
from sheetbridge.utils.app_logger import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown"""
    configure_logging(get_settings().log_level)
    logger.info("SheetBridge starting")
    app.state.container = get_container()
    yield
    logger.info("SheetBridge stopping")


def create_app() -> FastAPI:
    app = FastAPI(
        title="SheetBridge",
        version=__version__,
        description="Spreadsheet <-> JSON conversion with optional AI enhancement",
        lifespan=lifespan,
    )
    install_error_handlers(app)
    app.include_router(conversion_router, prefix="/api/v1")

    @app.get("/")
    async def root() -> Dict[str, Any]:
        return {
            "service": "sheetbridge",
            "version": __version__,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "excel_to_json": "/api/v1/excel-to-json",
                "json_to_excel": "/api/v1/json-to-excel",
                "json_to_excel_raw": "/api/v1/json-to-excel/raw",
                "generate_schema": "/api/v1/generate-schema",
                "docs": "/docs",
            },
        }

    @app.get("/health")
    async def health_check() -> Dict[str, Any]:
        container = get_container()
        return {
            "status": "healthy",
            "service": "sheetbridge",
            "version": __version__,
            "ai_configured": container.client.is_enabled(),
            "caches": container.cache_stats(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sheetbridge.main:app", host="0.0.0.0", port=8000)
