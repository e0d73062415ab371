from __future__ import annotations

from app.api.routes.structures import router as structures_router

__all__ = ["structures_router"]
