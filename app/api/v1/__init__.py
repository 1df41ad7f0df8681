from fastapi import APIRouter

from app.api.v1.routers import covenants, facilities, health, notifications

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(facilities.router)
api_router.include_router(covenants.router)
api_router.include_router(notifications.router)

__all__ = ["api_router"]
