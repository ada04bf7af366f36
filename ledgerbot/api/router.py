from fastapi import APIRouter

from . import system, telegram

api_router = APIRouter()
api_router.include_router(system.router, tags=["system"])
api_router.include_router(telegram.router, tags=["telegram"])
