"""
FastAPI application entrypoint.

Lifecycle:
  startup  → open DB pool (when configured), build the domain provider
  shutdown → close the Locus API client, close DB pool
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader

from locus_agent import database as db
from locus_agent.config import settings
from locus_agent.routers import session as session_router
from locus_agent.services.locus_api import ApiLocusProvider, LocusApiClient
from locus_agent.services.memory import InMemoryLocusProvider

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──────────────────────────────────────────────────────────────
    if db.persistence_enabled():
        logger.info("Opening DB pool…")
        await db.get_pool()
    else:
        logger.warning("DATABASE_URL not set; sessions are kept in memory")

    client: LocusApiClient | None = None
    if settings.locus_api_url:
        client = LocusApiClient(settings.locus_api_url, api_key=settings.locus_api_key)
        app.state.provider = ApiLocusProvider(client)
        logger.info("Using Locus API at %s", settings.locus_api_url)
    else:
        app.state.provider = InMemoryLocusProvider()
        logger.warning("LOCUS_API_URL not set; using in-memory tasks, sprints and docs")

    logger.info("Locus agent ready.")
    try:
        yield
    finally:
        # ── Shutdown ─────────────────────────────────────────────────────────
        if client is not None:
            await client.close()
        logger.info("Closing DB pool…")
        await db.close_pool()


app = FastAPI(
    title="Locus Agent",
    version="0.1.0",
    description="Workflow orchestration backend for the Locus project assistant.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API key authentication (when LOCUS_AGENT_API_KEY is set in env)
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def _verify_api_key(api_key: str | None = Depends(_api_key_header)):
    if settings.locus_agent_api_key and api_key != settings.locus_agent_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


_auth = [Depends(_verify_api_key)]

app.include_router(session_router.router, dependencies=_auth)


@app.get("/health")
async def health():
    return {"status": "ok"}
