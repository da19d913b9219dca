"""
API routes package
"""
from fastapi import APIRouter
from app.api.routes import geometry, sessions, geofences

api_router = APIRouter()

# Include all route modules
api_router.include_router(geometry.router)
api_router.include_router(sessions.router)
api_router.include_router(geofences.router)
