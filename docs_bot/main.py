"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from docs_bot.api import router as api_router
from docs_bot.core.config import get_settings
from docs_bot.core.logging import get_logger
from docs_bot.services.container import build_services

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build upstream clients and the PDF renderer once per process."""
    app.state.services = build_services(get_settings())
    logger.info("Docs Bot services initialized")
    yield


app = FastAPI(
    title="Docs Bot",
    description="Policy document governance: SharePoint sync, PDF renditions and PR approvals",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


app.include_router(api_router)
