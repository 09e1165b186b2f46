"""API route aggregation.

All routers registered here get mounted in main.py. The users router
applies authentication per route (register, login and refresh-token are
open), so no router-level auth dependency is used.
"""

from fastapi import APIRouter

from accounts.api.health import router as health_router
from accounts.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(users_router, tags=["users"])
