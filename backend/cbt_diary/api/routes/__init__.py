from fastapi import APIRouter

from cbt_diary.api.routes import cbt, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(cbt.router, prefix="/cbt", tags=["cbt"])
