from datetime import UTC, datetime
import uuid

from fastapi import Request

from valuation_api.providers.errors import ServiceUnavailableError

UNAVAILABLE_CODE = "valuation_unavailable"


def _meta(request: Request, **extra: object) -> dict:
    return {
        "request_id": getattr(request.state, "request_id", None) or str(uuid.uuid4()),
        "generated_at": datetime.now(UTC).isoformat(),
        **extra,
    }


def envelope(request: Request, data: dict | None, error: dict | None = None) -> dict:
    return {"data": data, "meta": _meta(request), "error": error}


def exception_envelope(request: Request, status_code: int, message: str, code: str, details: dict | None = None) -> dict:
    return {
        "success": False,
        "errors": [{"code": code, "message": message, "details": details or {}}],
        "meta": _meta(request, status_code=status_code),
    }


def unavailable_envelope(request: Request, exc: ServiceUnavailableError) -> dict:
    # Only the uniform message goes out; provider failures stay in the logs.
    return exception_envelope(request, status_code=503, message=exc.message, code=UNAVAILABLE_CODE)
