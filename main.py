"""
main.py — MedChain Entry Point
===============================
This is the file you run to start the service.
It does 4 things in order:
    1. Creates the FastAPI app
    2. Connects the database
    3. Initializes the crypto engine
    4. Registers all API route modules

Run with:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000

Or simply:
    python main.py
"""

import logging
import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config import settings

# ── Database ──────────────────────────────────────────────────────────────────
from db.session import engine, init_db

# ── Core systems ──────────────────────────────────────────────────────────────
from core.crypto import crypto_engine          # hashing / encryption / tokens
from core.errors import MedChainError

# ── API Routers (one per concern) ─────────────────────────────────────────────
from api.routes_identity import router as identity_router
from api.routes_permissions import router as permissions_router
from api.routes_history import router as history_router
from api.routes_prescriptions import router as prescriptions_router
from api.routes_ledger import router as ledger_router


# ── Logging setup ─────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    handlers=[
        logging.StreamHandler(),                          # print to terminal
        logging.FileHandler(settings.LOG_FILE),           # also save to file
    ],
)
logger = logging.getLogger("medchain.main")


# ── Lifespan: runs on startup and shutdown ────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── STARTUP ──────────────────────────────────────────────────────────
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    logger.info("Connecting to database...")
    await init_db()
    logger.info("✓ Database ready")

    logger.info("Initializing crypto engine...")
    crypto_engine.initialize()
    logger.info("✓ Crypto engine ready")

    logger.info(f"  {settings.APP_NAME} is LIVE on port {settings.PORT}")

    yield   # ← App runs here (handles all requests)

    # ── SHUTDOWN ──────────────────────────────────────────────────────────
    logger.info("Shutting down: closing connections...")
    await engine.dispose()
    logger.info("✓ Shutdown complete")


# ── Create the FastAPI app ────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tamper-evident patient records ledger with doctor access control",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error translation ─────────────────────────────────────────────────────────
@app.exception_handler(MedChainError)
async def medchain_error_handler(request: Request, exc: MedChainError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.__class__.__name__},
    )


# ── Register all routers ──────────────────────────────────────────────────────
app.include_router(identity_router,      prefix="/identity",      tags=["Identity"])
app.include_router(permissions_router,   prefix="/permissions",   tags=["Permissions"])
app.include_router(history_router,       prefix="/history",       tags=["History"])
app.include_router(prescriptions_router, prefix="/prescriptions", tags=["Prescriptions"])
app.include_router(ledger_router,        prefix="/ledger",        tags=["Ledger"])


# ── Root endpoint ─────────────────────────────────────────────────────────────
@app.get("/", tags=["Status"])
async def root():
    """Health check: confirms the API is running."""
    return {
        "system": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "operational",
        "docs": "/docs",
    }


@app.get("/health-check", tags=["Status"])
async def health_check():
    """Deep health check: confirms DB and crypto engine are ready."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return {
        "api": "ok",
        "database": "ok",
        "crypto": crypto_engine.is_ready(),
    }


# ── Run directly ──────────────────────────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
