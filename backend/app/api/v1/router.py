"""API router - includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1.endpoints import auth, health, recovery, two_factor, users

api_router = APIRouter()

api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(two_factor.router, prefix="/auth/2fa", tags=["Two-Factor"])
api_router.include_router(recovery.router, prefix="/auth/recover-password", tags=["Recovery"])
api_router.include_router(users.router, prefix="/user", tags=["User"])
