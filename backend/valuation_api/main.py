from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from valuation_api.api.response import exception_envelope, unavailable_envelope
from valuation_api.api.v1.router import build_api_router
from valuation_api.core.config import Settings, get_settings
from valuation_api.core.logging_config import configure_logging
from valuation_api.core.metrics import render_metrics, valuation_provider_failover_active
from valuation_api.core.middleware import OpsRequestMiddleware
from valuation_api.providers.errors import ServiceUnavailableError
from valuation_api.services.valuation_service import ValuationService

logger = logging.getLogger("valuation.api")


def create_app(valuation_service: ValuationService, settings: Settings | None = None) -> FastAPI:
    """Build the operational API around an already constructed valuation service.

    The service is kept on ``app.state`` so request handlers share one set of
    provider statistics without a module-level singleton.
    """
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level, app_env=settings.app_env)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Valuation API starting.",
            extra={"event": "app.started", "provider_identity": settings.monitored_provider},
        )
        yield
        valuation_service.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.valuation_service = valuation_service
    app.add_middleware(OpsRequestMiddleware)
    app.include_router(build_api_router(), prefix=settings.api_v1_prefix)

    if settings.metrics_enabled:
        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            engine = valuation_service.engine
            first, _ = engine.current_order()
            valuation_provider_failover_active.labels(provider=engine.monitored_provider.value).set(
                0 if first is engine.monitored_provider else 1
            )
            payload, content_type = render_metrics()
            return Response(content=payload, media_type=content_type)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        details: dict[str, object] = exc.detail if isinstance(exc.detail, dict) else {}
        payload = exception_envelope(
            request=request,
            status_code=exc.status_code,
            message=message,
            code=f"http_{exc.status_code}",
            details=details,
        )
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(ServiceUnavailableError)
    async def unavailable_exception_handler(request: Request, exc: ServiceUnavailableError) -> JSONResponse:
        return JSONResponse(status_code=503, content=unavailable_envelope(request, exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        payload = exception_envelope(
            request=request,
            status_code=422,
            message="Validation failed",
            code="validation_error",
            details={"errors": exc.errors()},
        )
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
        payload = exception_envelope(
            request=request,
            status_code=500,
            message="Internal server error",
            code="internal_server_error",
        )
        return JSONResponse(status_code=500, content=payload)

    return app
