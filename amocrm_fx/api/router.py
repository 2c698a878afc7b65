from fastapi import APIRouter

from amocrm_fx.api.routes import diagnostics, monitoring, webhook

api_router = APIRouter()

api_router.include_router(monitoring.router, tags=["monitoring"])
api_router.include_router(webhook.router, tags=["webhook"])
api_router.include_router(diagnostics.router, tags=["diagnostics"])
