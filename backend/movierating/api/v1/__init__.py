"""API v1 package."""
from fastapi import APIRouter

from movierating.api.v1 import auth, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(users.router, tags=["users"])

__all__ = ["api_router"]
