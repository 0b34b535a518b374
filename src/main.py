"""Entry point for the softphone agent service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.dependencies import built_coordinator
from api.routes import router as api_router
from config.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    coordinator = built_coordinator()
    if coordinator is not None:
        coordinator.teardown()
        await coordinator.drain()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)

app = FastAPI(
    title="Softphone Agent",
    description="Call-session coordinator for an operator softphone.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
