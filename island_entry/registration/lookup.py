from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from ..backend.client import IslandEntryBackend
from ..backend.http_client import normalize_code
from .cancel import CancelToken, is_cancelled

logger = logging.getLogger(__name__)

NO_CODE_MESSAGE = "No code provided."


class LookupState(str, Enum):
    NO_CODE = "no_code"
    LOADING = "loading"
    ERROR = "error"
    READY = "ready"


@dataclass(frozen=True)
class LookupView:
    state: LookupState
    unique_code: str | None = None
    qr_code_url: str | None = None
    payment_link: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"state": self.state.value}
        if self.unique_code:
            out["unique_code"] = self.unique_code
        if self.qr_code_url:
            out["qr_code_url"] = self.qr_code_url
        if self.payment_link:
            out["payment_link"] = self.payment_link
        if self.message:
            out["message"] = self.message
        return out


class ResultLookup:
    """Drives the registration result page from its ``code`` query parameter.

    Each ``load`` starts a new generation; a fetch that finishes after a newer
    ``load`` (or after its token was cancelled) is dropped.
    """

    def __init__(self, backend: IslandEntryBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()
        self._generation = 0
        self._view = LookupView(state=LookupState.NO_CODE, message=NO_CODE_MESSAGE)

    @property
    def view(self) -> LookupView:
        with self._lock:
            return self._view

    def load(self, code: str | None, cancel: CancelToken | None = None) -> LookupView:
        normalized = normalize_code(code)
        with self._lock:
            self._generation += 1
            generation = self._generation
            if not normalized:
                self._view = LookupView(state=LookupState.NO_CODE, message=NO_CODE_MESSAGE)
                return self._view
            self._view = LookupView(state=LookupState.LOADING, unique_code=normalized)

        result = self._backend.get_registration_result(normalized)
        if result.ok and result.registration is not None:
            registration = result.registration
            view = LookupView(
                state=LookupState.READY,
                unique_code=registration.unique_code,
                qr_code_url=registration.qr_code_url,
                payment_link=registration.payment_link,
            )
        else:
            logger.info("Result lookup for %s failed: %s", normalized, result.error)
            view = LookupView(
                state=LookupState.ERROR,
                unique_code=normalized,
                message=f"Error fetching registration result: {result.error or 'unknown error'}",
            )

        with self._lock:
            if generation != self._generation or is_cancelled(cancel):
                return view
            self._view = view
            return view
