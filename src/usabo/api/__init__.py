"""API route aggregation.

All routers registered here get mounted in main.py under /api.

Learn: Both routers are open at the router level. The auth router
protects its own /me routes with the get_current_account dependency,
so sign-in endpoints stay reachable without a token.
"""

from fastapi import APIRouter

from usabo.api.auth import router as auth_router
from usabo.api.health import router as health_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
