"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cashguard.api.routes import config, health, incidents, monitor, status, stream


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Close the monitor engine (and its upload worker) on shutdown."""

    from cashguard.api.services.state import stop_engine

    yield
    stop_engine()


app = FastAPI(title="CashGuard Vision API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(config.router)
app.include_router(status.router)
app.include_router(incidents.router)
app.include_router(monitor.router)
app.include_router(stream.router)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("cashguard.api.main:app", host="0.0.0.0", port=8000)
