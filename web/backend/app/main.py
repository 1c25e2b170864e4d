from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import games
from .services.session import session_manager


# ---------------------------------------------------------------------------
# Lifespan: start TTL cleanup task on boot, cancel on shutdown
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(session_manager.cleanup_loop())
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Tâb Game Server",
    description="Authoritative server for online Tâb matches.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: the browser client is served from a different origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(games.router, prefix="/api")


@app.get("/api/health", include_in_schema=False)
def health():
    return {"status": "ok", "sessions": session_manager.active_count()}
