"""Expose the contract billing FastAPI app."""

import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import _read_bool_env
from .migrations import run_database_migrations
from .routers import (
    billing_batches_router,
    billing_items_router,
    cases_router,
    contract_invoices_router,
)

LOGGER = logging.getLogger(__name__)

RUN_MIGRATIONS_ENV = "RUN_MIGRATIONS_ON_STARTUP"

LOCAL_DEVELOPMENT_ORIGINS = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}
LOCALHOST_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"


def _normalize_origin(origin: str) -> str | None:
    stripped = origin.strip()
    if not stripped:
        return None
    return stripped.rstrip("/")


def _read_allowed_origins(raw_origins: Iterable[str]) -> list[str]:
    normalized = {_normalize_origin(origin) for origin in raw_origins}
    return sorted({origin for origin in normalized if origin})


def _resolve_allowed_origins() -> list[str]:
    """Origins from ``BACKEND_ALLOWED_ORIGINS`` (commas or whitespace), plus local dev."""

    raw_value = os.getenv("BACKEND_ALLOWED_ORIGINS") or ""
    env_origins = [origin for origin in re.split(r"[\s,]+", raw_value) if origin]
    return _read_allowed_origins([*env_origins, *LOCAL_DEVELOPMENT_ORIGINS])


def ensure_database_is_ready() -> None:
    """Apply pending database migrations when the service starts."""

    if not _read_bool_env(RUN_MIGRATIONS_ENV, True):
        LOGGER.info("Skipping migrations on startup (%s disabled)", RUN_MIGRATIONS_ENV)
        return
    LOGGER.info("Ensuring database schema is up to date before serving requests")
    run_database_migrations()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    yield


app = FastAPI(title="Contract Billing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_allowed_origins(),
    allow_origin_regex=LOCALHOST_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(billing_items_router, prefix="/billing-items", tags=["billing-items"])
app.include_router(
    billing_batches_router, prefix="/billing-batches", tags=["billing-batches"]
)
app.include_router(
    contract_invoices_router, prefix="/contract-invoices", tags=["contract-invoices"]
)
app.include_router(cases_router, prefix="/cases", tags=["cases"])


@app.get("/", tags=["health"])
def read_root() -> dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}
