from fastapi import APIRouter
from finpin.api.v1 import device, parse, system

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(system.router, tags=["system"])
api_router.include_router(device.router, prefix="/device", tags=["device"])
api_router.include_router(parse.router, prefix="/parse", tags=["parse"])
