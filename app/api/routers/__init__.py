"""
app/api/routers package marker.
"""

from app.api.routers.workflows import router as workflows_router

__all__ = [
    "workflows_router",
]
