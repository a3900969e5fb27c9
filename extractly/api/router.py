from fastapi import APIRouter

from extractly.api import extract, health

api_router = APIRouter()

api_router.include_router(extract.router, tags=["Extract"])
api_router.include_router(health.router, tags=["Health"])
