from fastapi import APIRouter

from valuation_api.api.v1 import health, provider_health


def build_api_router() -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(provider_health.router)
    return api_router
