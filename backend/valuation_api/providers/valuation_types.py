from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

MAX_VRM_LENGTH = 7


class ProviderIdentity(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"

    @property
    def other(self) -> ProviderIdentity:
        return ProviderIdentity.SECONDARY if self is ProviderIdentity.PRIMARY else ProviderIdentity.PRIMARY


@dataclass(frozen=True)
class ValuationResult:
    vrm: str
    lowest_value: Decimal
    highest_value: Decimal
    provider_name: str

    def __post_init__(self) -> None:
        if not self.vrm or len(self.vrm) > MAX_VRM_LENGTH:
            raise ValueError(f"vrm must be between 1 and {MAX_VRM_LENGTH} characters")

    @property
    def midpoint_value(self) -> Decimal:
        return (self.highest_value + self.lowest_value) / 2

    def as_dict(self) -> dict[str, Any]:
        return {
            "vrm": self.vrm,
            "lowestValue": str(self.lowest_value),
            "highestValue": str(self.highest_value),
            "providerName": self.provider_name,
        }


@dataclass(frozen=True)
class ProviderLogEntry:
    vrm: str
    provider: str
    request_url: str
    start_time: datetime
    end_time: datetime
    duration_ms: int
    response_code: int
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def build(
        cls,
        *,
        vrm: str,
        provider: str,
        request_url: str,
        start_time: datetime,
        end_time: datetime,
        response_code: int,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> ProviderLogEntry:
        duration_ms = max(0, (end_time - start_time) // timedelta(milliseconds=1))
        return cls(
            vrm=vrm,
            provider=provider,
            request_url=request_url,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            response_code=response_code,
            error_code=error_code,
            error_message=error_message,
        )

    @property
    def succeeded(self) -> bool:
        return self.error_code is None

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "vrm": self.vrm,
            "provider": self.provider,
            "request_url": self.request_url,
            "request_started_at": self.start_time.isoformat(),
            "duration_ms": self.duration_ms,
            "response_code": self.response_code,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
