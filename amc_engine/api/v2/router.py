from fastapi import APIRouter
from amc_engine.api.v2 import amc

api_router = APIRouter()

api_router.include_router(amc.router, prefix="/amc", tags=["amc"])
