from fastapi import APIRouter

from api.status import route as status_router

api_router = APIRouter()

api_router.include_router(status_router, tags=["status"])
