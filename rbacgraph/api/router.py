from fastapi import APIRouter

from .routes import sync

api_router = APIRouter(prefix="/api")
api_router.include_router(sync.router)
