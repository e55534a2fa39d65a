from __future__ import annotations
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.api import router
from app.web import router as web_router
from datastore.protocol_catalog import build_default_catalog
from logging_config import configure_logging
from services.ai_gateway import build_default_gateway
from services.monitor import build_default_monitor
from settings import get_settings
from storage.ai_settings import build_default_settings_store


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    monitor = build_default_monitor()
    gateway = build_default_gateway()
    if get_settings().autostart:
        await monitor.start()
    try:
        yield
    finally:
        await monitor.stop()
        await gateway.aclose()
        build_default_monitor.cache_clear()
        build_default_gateway.cache_clear()
        build_default_settings_store.cache_clear()
        build_default_catalog.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Factory Monitor",
        description="Simulated and live factory sensor monitoring with AI-assisted maintenance.",
        version="0.1.0",
        lifespan=lifespan,
    )
    static_dir = Path(__file__).resolve().parent.parent / "static"
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    app.include_router(router)
    app.include_router(web_router)
    return app

app = create_app()
