from fastapi import HTTPException, Request, status

from valuation_api.services.valuation_service import ValuationService


def get_valuation_service(request: Request) -> ValuationService:
    service = getattr(request.app.state, "valuation_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Valuation service is not configured")
    return service
