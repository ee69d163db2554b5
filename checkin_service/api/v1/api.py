# checkin_service/api/v1/api.py

from fastapi import APIRouter
from checkin_service.api.v1.endpoints import check_in, tickets

api_router = APIRouter()

api_router.include_router(check_in.router)
api_router.include_router(tickets.router)
