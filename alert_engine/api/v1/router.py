"""Main API router."""

from fastapi import APIRouter

from alert_engine.api.v1.endpoints import alerts, auth

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
