"""
Script2Video API routes package.
"""

from fastapi import APIRouter

from .proxy import router as proxy_router

# Main API router that includes all sub-routers
api_router = APIRouter()

# Include media proxy route
api_router.include_router(proxy_router, tags=["proxy"])

__all__ = [
    "api_router",
    "proxy_router",
]
