from __future__ import annotations

import logging
import threading
import time

from ..backend.client import ErrorKind, Fee, FeeResult, IslandEntryBackend

logger = logging.getLogger(__name__)

FEE_UNAVAILABLE_ERROR = "Entry fee is not configured. Please contact the tourism office."

_RETRY_SECONDS = 30


class FeeConfig:
    """Entry fee shared by every controller.

    Loaded once (normally at app start) and re-fetched when older than
    ``refresh_interval_seconds``, either by ``get`` or by the background
    thread from ``start_background_refresh``. Registration only reads ``fee``.
    A failed refresh keeps the last good value.
    """

    def __init__(
        self,
        backend: IslandEntryBackend,
        *,
        refresh_interval_seconds: int = 300,
        clock=time.monotonic,
    ) -> None:
        self._backend = backend
        self._refresh_interval = max(0, int(refresh_interval_seconds))
        self._clock = clock
        self._lock = threading.Lock()
        self._fee: Fee | None = None
        self._loaded_at: float | None = None
        self._last_error: FeeResult | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def fee(self) -> Fee | None:
        with self._lock:
            return self._fee

    def _stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at >= self._refresh_interval

    def get(self) -> FeeResult:
        with self._lock:
            if self._fee is not None and not self._stale():
                return FeeResult(status="ok", fee=self._fee)
        return self.refresh()

    def refresh(self) -> FeeResult:
        result = self._backend.get_active_fee()
        with self._lock:
            if result.ok and result.fee is not None:
                self._fee = result.fee
                self._loaded_at = self._clock()
                self._last_error = None
                return result

            self._last_error = result
            if self._fee is not None:
                logger.warning("Entry fee refresh failed (%s); keeping last known fee", result.error)
                # Retry on the next interval rather than on every request.
                self._loaded_at = self._clock()
                return FeeResult(status="ok", fee=self._fee)

        logger.error("Entry fee configuration unavailable: %s", result.error)
        return FeeResult(
            status="error",
            error_kind=result.error_kind or ErrorKind.CONFIGURATION,
            error=result.error or FEE_UNAVAILABLE_ERROR,
        )

    @property
    def last_error(self) -> FeeResult | None:
        with self._lock:
            return self._last_error

    def refresh_if_stale(self) -> FeeResult | None:
        with self._lock:
            if not self._stale():
                return None
        return self.refresh()

    # --- Background refresh ---

    def _poll_seconds(self) -> float:
        # Retry sooner while no fee has been loaded yet.
        with self._lock:
            loaded = self._fee is not None
        interval = max(1, self._refresh_interval)
        return interval if loaded else min(interval, _RETRY_SECONDS)

    def _run(self) -> None:
        while not self._stop.wait(self._poll_seconds()):
            try:
                self.refresh_if_stale()
            except Exception:  # noqa: BLE001
                logger.exception("Entry fee refresh crashed")

    def start_background_refresh(self) -> threading.Thread:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._stop.clear()
                self._thread = threading.Thread(target=self._run, name="fee-refresh", daemon=True)
                self._thread.start()
            return self._thread

    def stop(self) -> None:
        self._stop.set()
