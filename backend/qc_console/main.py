"""
Game QC Console - FastAPI Application

Main entry point for the Game QC Console backend.

Architecture:
- Developer creates a draft GameVersion and submits it
- QC runs automated QA (QA-01..QA-04) → QATestResults snapshot
- QC records pass/fail → QCReport (append-only) → status flip (conditional write)
- CTO/CEO approve, Admin publishes/archives
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .routers import auth_router, versions_router, qc_router, results_router
from .database import init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Game QC Console",
    description="""
    Game QC Console - Version Lifecycle and QC Decision Engine

    Developers upload mini-game builds, automated QA runs against them, and
    a chain of reviewers moves each version through the publication pipeline.

    ## Lifecycle
    draft → uploaded → qc_processing → qc_passed / qc_failed → approved → published ⇄ archived

    ## Key Principles
    - Every status change goes through the version state machine
    - QC reports are append-only; a reversed verdict is a new report
    - A pass can never override a failed automated check
    - Concurrent decisions on one version: exactly one wins
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(versions_router)
app.include_router(qc_router)
app.include_router(results_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Game QC Console",
        "version": __version__,
        "description": "Version lifecycle and QC decision engine",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m qc_console.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
