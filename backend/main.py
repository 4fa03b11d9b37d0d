# backend/main.py
"""
Perspective – FastAPI Application Entry Point
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.errors import register_error_handlers
from core.logging_config import configure_logging, request_logger
from db.session import engine, Base

# Import all models so Base.metadata knows about them
from models import user, challenge, content as content_models, echo_score as echo_models  # noqa: F401

# Route imports
from api.routes import (
    auth,
    users,
    challenges,
    echo_score,
    content,
)

configure_logging()
logger = logging.getLogger("main")

app = FastAPI(
    title=settings.APP_NAME,
    description="Critical-thinking challenges and the Echo Score",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Request ids, access log, error bodies ─────────────────────────────────────
app.middleware("http")(request_logger)
register_error_handlers(app)


# ── Startup: Create DB tables ─────────────────────────────────────────────────
@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV}). Tables created.")
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            m = list(route.methods)[0] if route.methods else "     "
            logger.debug(f"   {m:7s} {route.path}")


# ── API Routes ────────────────────────────────────────────────────────────────
API_PREFIX = "/api"

app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(users.router, prefix=API_PREFIX)
app.include_router(challenges.router, prefix=API_PREFIX)
app.include_router(echo_score.router, prefix=API_PREFIX)
app.include_router(content.router, prefix=API_PREFIX)


@app.get("/api/health", tags=["Health"])
async def health_check():
    return {"status": "ok", "app": settings.APP_NAME}
