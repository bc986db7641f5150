from fastapi import APIRouter

from consultflow.api.routes import claims, consultations, demo, drafts, flow, health, wizard

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(consultations.router, prefix="/consultations", tags=["consultations"])
api_router.include_router(flow.router, prefix="/flow", tags=["flow"])
api_router.include_router(demo.router, prefix="/demo", tags=["demo"])
api_router.include_router(claims.router, prefix="/claims", tags=["claims"])
api_router.include_router(drafts.router, prefix="/drafts", tags=["drafts"])
api_router.include_router(wizard.router, prefix="/wizard", tags=["wizard"])
