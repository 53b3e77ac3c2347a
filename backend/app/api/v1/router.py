from fastapi import APIRouter
from app.api.v1.endpoints import auth, health, clinical, skills, portfolios, reports

api_router = APIRouter()

# Deep health check endpoints (/health/live, /health/ready)
api_router.include_router(health.router)

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(clinical.router)
api_router.include_router(skills.router)
api_router.include_router(portfolios.router)
api_router.include_router(reports.router)
