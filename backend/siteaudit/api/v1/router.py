"""
API v1 router aggregating all endpoints.
"""
from fastapi import APIRouter

from siteaudit.api.v1.audits import router as audits_router
from siteaudit.api.v1.pages import router as pages_router

api_router = APIRouter()

api_router.include_router(audits_router)
api_router.include_router(pages_router)
