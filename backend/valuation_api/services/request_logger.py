from __future__ import annotations

from concurrent.futures import Executor, Future
import logging
from threading import Lock
from typing import Protocol

from valuation_api.providers.valuation_types import ProviderLogEntry


logger = logging.getLogger("valuation.request_logger")


class ProviderLogSink(Protocol):
    def save(self, entry: ProviderLogEntry) -> None:
        ...


class LoggingProviderLogSink:
    """Writes each provider attempt as one structured log record."""

    def __init__(self, logger_name: str = "valuation.provider.requests") -> None:
        self._logger = logging.getLogger(logger_name)

    def save(self, entry: ProviderLogEntry) -> None:
        level = logging.INFO if entry.succeeded else logging.WARNING
        self._logger.log(level, "provider.request", extra={"event": "provider.request", **entry.as_log_fields()})


class RequestLogger:
    """Best-effort mirror of provider attempts to a log sink.

    Sink failures are logged here and never reach the caller. With an executor
    the write runs in the background; without one it runs inline.
    """

    def __init__(self, sink: ProviderLogSink, *, executor: Executor | None = None) -> None:
        self._sink = sink
        self._executor = executor
        self._pending: set[Future] = set()
        self._pending_lock = Lock()

    def log_attempt(self, entry: ProviderLogEntry) -> None:
        if self._executor is None:
            self._write(entry)
            return
        try:
            future = self._executor.submit(self._write, entry)
        except RuntimeError:
            logger.warning("provider log executor unavailable; writing inline", exc_info=True)
            self._write(entry)
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def flush(self) -> None:
        with self._pending_lock:
            pending = list(self._pending)
        for future in pending:
            future.result()

    def close(self) -> None:
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _write(self, entry: ProviderLogEntry) -> None:
        try:
            self._sink.save(entry)
        except Exception:  # noqa: BLE001
            logger.warning(
                "provider request log persistence failed",
                extra={"event": "provider.request_log.failed", "provider": entry.provider, "vrm": entry.vrm},
                exc_info=True,
            )

    def _discard(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)
