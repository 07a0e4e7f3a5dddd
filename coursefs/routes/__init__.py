from fastapi import APIRouter
from coursefs.routes.resources import router as resources_router
from coursefs.routes.storage import router as storage_router
api_router = APIRouter()
api_router.include_router(resources_router)
api_router.include_router(storage_router)
