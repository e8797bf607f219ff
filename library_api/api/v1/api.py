# library_api/api/v1/api.py
from fastapi import APIRouter

from library_api.api.v1.endpoints import auth, books, equipment, lending

api_router_v1 = APIRouter(prefix="/api/v1")

api_router_v1.include_router(auth.router, prefix="/auth")
api_router_v1.include_router(books.router, prefix="/books")
api_router_v1.include_router(equipment.router, prefix="/equipment")
api_router_v1.include_router(lending.router, prefix="/lending")
