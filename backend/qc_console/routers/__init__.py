"""Game QC Console - API Routers"""
from .auth import router as auth_router
from .versions import router as versions_router
from .qc import router as qc_router
from .results import router as results_router

__all__ = [
    "auth_router",
    "versions_router",
    "qc_router",
    "results_router",
]
