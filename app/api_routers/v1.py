from fastapi import APIRouter

from app.features.diagnostic.routes.analyze import router as analyze_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(analyze_router)
