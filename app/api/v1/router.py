# app/api/v1/router.py
from fastapi import APIRouter

from app.api.v1.locate import router as locate_router
from app.api.v1.devices import router as devices_router

api_router = APIRouter()

api_router.include_router(locate_router)
api_router.include_router(devices_router)
