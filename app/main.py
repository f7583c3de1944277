# app/main.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from app.providers.eurostat_provider import EurostatAdapter
from app.providers.wb_provider import WorldBankAdapter
from app.routes import country
from app.services.indicator_service import IndicatorResolver, OverlayCache

logger = logging.getLogger("euromap")
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def build_resolver(client: httpx.AsyncClient) -> IndicatorResolver:
    return IndicatorResolver(
        primary=EurostatAdapter(client=client),
        secondary=WorldBankAdapter(client=client),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    limits = httpx.Limits(
        max_connections=int(os.getenv("HTTP_MAX_CONNECTIONS", "20")),
        max_keepalive_connections=int(os.getenv("HTTP_MAX_KEEPALIVE", "10")),
    )
    async with httpx.AsyncClient(follow_redirects=True, limits=limits) as client:
        resolver = build_resolver(client)
        app.state.resolver = resolver
        app.state.overlay_cache = OverlayCache(resolver)
        logger.info("[init] resolver ready: %s -> %s", resolver.primary.name, resolver.secondary.name)
        yield


app = FastAPI(
    title="Euro Econ Map API",
    description="European economic indicators for the interactive map",
    version="2026.10.19",
    lifespan=lifespan,
)
app.include_router(country.router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
