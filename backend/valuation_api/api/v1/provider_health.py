
from fastapi import APIRouter, Depends, Request

from valuation_api.api.deps import get_valuation_service
from valuation_api.api.response import envelope
from valuation_api.services.valuation_service import ValuationService


router = APIRouter(prefix="/provider-health", tags=["provider-health"])


def _summary(service: ValuationService) -> dict:
    engine = service.engine
    first, fallback = engine.current_order()
    snapshots = service.stats_snapshot()
    return {
        "monitored_provider": engine.monitored_provider.value,
        "failed_over": first is not engine.monitored_provider,
        "order": [first.value, fallback.value],
        "providers": [snapshot.as_dict() for snapshot in snapshots.values()],
    }


@router.get("/summary")
def provider_health_summary(
    request: Request,
    service: ValuationService = Depends(get_valuation_service),
) -> dict:
    return envelope(request, _summary(service))


@router.post("/reset")
def reset_provider_health(
    request: Request,
    service: ValuationService = Depends(get_valuation_service),
) -> dict:
    service.reset_stats()
    return envelope(request, _summary(service))
