# routers/__init__.py

from fastapi import APIRouter

from .auth import router as auth_router
from .requests import router as requests_router
from .admin import router as admin_router
from .public import router as public_router
from .health import router as health_router


# Every router in one place, for mounting under a common prefix
api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(requests_router)
api_router.include_router(admin_router)
api_router.include_router(public_router)
api_router.include_router(health_router)

__all__ = ["api_router"]
