"""API routers."""

from bankrec.routers.imports import router as imports_router
from bankrec.routers.reconciliation import router as reconciliation_router

__all__ = ["imports_router", "reconciliation_router"]
