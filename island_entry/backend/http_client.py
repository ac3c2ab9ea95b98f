from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urljoin
import threading

import requests

from .client import (
    ActionResult,
    EntryListResult,
    EntryLookupResult,
    EntryStatus,
    ErrorKind,
    Fee,
    FeeResult,
    IslandEntryBackend,
    Member,
    Registration,
    RegistrationResult,
    StatusResult,
)

logger = logging.getLogger(__name__)

NOT_CONFIGURED_ERROR = "ISLAND_ENTRY_API_URL is not configured"


@dataclass(frozen=True)
class HttpBackendConfig:
    base_url: str
    timeout_seconds: int = 15
    auth_bearer_token: str = ""


def normalize_code(unique_code: str | None) -> str:
    # Codes are stored upper-case by the backend (e.g. "A1B2C3").
    return (unique_code or "").strip().upper()


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _error_kind(status_code: int) -> ErrorKind:
    if status_code == 0:
        return ErrorKind.NETWORK
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in {400, 409, 422}:
        return ErrorKind.BUSINESS_RULE
    return ErrorKind.NETWORK


class HttpIslandEntryClient(IslandEntryBackend):
    def __init__(self, config: HttpBackendConfig) -> None:
        # Guard against env var formatting mistakes like:
        #   ISLAND_ENTRY_API_URL=https://host.tld\n/api/v1/
        # which otherwise becomes an invalid URL.
        self._base_url = "".join((config.base_url or "").split())
        self._timeout_seconds = max(1, int(config.timeout_seconds))
        self._auth_bearer_token = (config.auth_bearer_token or "").strip()

        # Keep one requests.Session per worker thread for connection pooling
        # without sharing a Session across threads.
        self._local = threading.local()

    def is_configured(self) -> bool:
        return bool(self._base_url)

    def _session(self) -> requests.Session:
        sess = getattr(self._local, "session", None)
        if sess is None:
            sess = requests.Session()
            self._local.session = sess
        return sess

    def _timeout(self) -> tuple[float, float]:
        # requests timeout is (connect, read)
        connect = min(3.0, float(self._timeout_seconds))
        read = float(self._timeout_seconds)
        return (connect, read)

    def _url(self, path: str) -> str:
        base = self._base_url.rstrip("/")
        p = path.lstrip("/")
        return f"{base}/{p}"

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._auth_bearer_token:
            headers["Authorization"] = f"Bearer {self._auth_bearer_token}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        *,
        idempotency_key: str | None = None,
    ) -> tuple[int, Any, str | None]:
        if not self._base_url:
            return 0, None, NOT_CONFIGURED_ERROR

        url = self._url(path)
        kwargs: dict[str, Any] = {
            "headers": self._headers(idempotency_key),
            "timeout": self._timeout(),
        }
        if payload is not None:
            kwargs["json"] = payload
        try:
            resp = self._session().request(method, url, **kwargs)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Backend request failed: %s %s", method, url)
            return 0, None, str(exc)

        try:
            data = resp.json() if resp.content else None
        except Exception:  # noqa: BLE001
            data = None

        if 200 <= resp.status_code < 300:
            return resp.status_code, data, None

        error_msg = None
        if isinstance(data, dict):
            error_msg = str(data.get("error") or data.get("message") or "") or None
        if not error_msg:
            error_msg = f"HTTP {resp.status_code}"
        logger.warning("Backend %s %s returned %s: %s", method, path, resp.status_code, error_msg)
        return resp.status_code, data, error_msg

    def _get_json(self, path: str) -> tuple[int, Any, str | None]:
        return self._request("GET", path)

    def _post_json(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        idempotency_key: str | None = None,
    ) -> tuple[int, Any, str | None]:
        return self._request("POST", path, payload, idempotency_key=idempotency_key)

    def _failure_kind(self, status_code: int, error: str | None) -> ErrorKind:
        if status_code == 0 and error == NOT_CONFIGURED_ERROR:
            return ErrorKind.CONFIGURATION
        return _error_kind(status_code)

    def _absolute_url(self, url: str) -> str:
        # Allow backends to return relative QR/payment URLs.
        if url.startswith("/") or url.startswith("./"):
            base_for_join = self._base_url
            if base_for_join and not base_for_join.endswith("/"):
                base_for_join = base_for_join + "/"
            return urljoin(base_for_join, url)
        return url

    def _parse_registration(self, data: Any) -> Registration | None:
        if not isinstance(data, dict):
            return None

        raw = data.get("registration")
        if not isinstance(raw, dict):
            raw = data

        unique_code = normalize_code(str(raw.get("unique_code") or ""))
        if not unique_code:
            return None

        qr_code_url = str(raw.get("qr_code_url") or "").strip()
        payment_link = (
            data.get("payment_link")
            or data.get("checkout_url")
            or raw.get("payment_link")
            or ""
        )
        payment_link = str(payment_link).strip()
        status = raw.get("payment_status") or raw.get("status")

        return Registration(
            unique_code=unique_code,
            qr_code_url=self._absolute_url(qr_code_url) if qr_code_url else "",
            payment_link=payment_link or None,
            payment_method=(str(raw.get("payment_method")) if raw.get("payment_method") else None),
            status=(str(status).upper() if status else None),
            total_fee=_to_float(raw.get("total_fee", data.get("total_fee"))),
        )

    @staticmethod
    def _parse_member(raw: dict[str, Any]) -> Member:
        return Member(
            name=str(raw.get("name") or "").strip(),
            age=_to_int(raw.get("age")),
            sex=(raw.get("sex") or None),
            is_foreign=bool(raw.get("is_foreign")),
            municipality=(raw.get("municipality") or None),
            province=(raw.get("province") or None),
            country=(raw.get("country") or None),
        )

    def _registration_result(self, status_code: int, data: Any, error: str | None) -> RegistrationResult:
        if error:
            return RegistrationResult(
                status="error",
                error_kind=self._failure_kind(status_code, error),
                error=error,
            )

        # Some backends may return 200 with success=false.
        if isinstance(data, dict) and data.get("success") is False:
            message = str(data.get("message") or data.get("error") or "").strip()
            return RegistrationResult(
                status="error",
                error_kind=ErrorKind.BUSINESS_RULE,
                error=message or "Registration was rejected.",
            )

        registration = self._parse_registration(data)
        if registration is None:
            return RegistrationResult(
                status="error",
                error_kind=ErrorKind.NETWORK,
                error="Invalid backend response",
            )
        return RegistrationResult(status="ok", registration=registration)

    # --- Fee ---

    def get_active_fee(self) -> FeeResult:
        status_code, data, error = self._get_json("prices/active")
        if error:
            return FeeResult(status="error", error_kind=self._failure_kind(status_code, error), error=error)

        raw = data
        if isinstance(data, dict) and isinstance(data.get("price"), dict):
            raw = data["price"]
        if not isinstance(raw, dict):
            return FeeResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="No active entry fee")

        amount = _to_float(raw.get("amount"))
        if amount is None or amount < 0:
            return FeeResult(status="error", error_kind=ErrorKind.NETWORK, error="Invalid entry fee amount")

        return FeeResult(status="ok", fee=Fee(amount=amount, is_enabled=bool(raw.get("is_enabled"))))

    # --- Registration ---

    def register_visitors(
        self,
        group_members: list[dict[str, Any]],
        idempotency_key: str | None = None,
    ) -> RegistrationResult:
        status_code, data, error = self._post_json(
            "register",
            {"groupMembers": group_members},
            idempotency_key=idempotency_key,
        )
        # backend returns 201 on success, but allow any 2xx.
        return self._registration_result(status_code, data, error)

    def register_island_entry(
        self,
        payload: dict[str, Any],
        idempotency_key: str | None = None,
    ) -> RegistrationResult:
        status_code, data, error = self._post_json(
            "island-entry/register",
            payload,
            idempotency_key=idempotency_key,
        )
        return self._registration_result(status_code, data, error)

    def register_island_walk_in(self, group_members: list[dict[str, Any]]) -> RegistrationResult:
        status_code, data, error = self._post_json("island-entry/walk-in", {"groupMembers": group_members})
        return self._registration_result(status_code, data, error)

    # --- Lookup ---

    def get_entry_status(self, unique_code: str) -> StatusResult:
        code = normalize_code(unique_code)
        if not code:
            return StatusResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found.")

        status_code, data, error = self._get_json(f"island-entry/status/{quote(code)}")
        if error:
            return StatusResult(status="error", error_kind=self._failure_kind(status_code, error), error=error)

        if not isinstance(data, dict):
            return StatusResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found.")

        raw = data.get("registration") if isinstance(data.get("registration"), dict) else data
        status = raw.get("payment_status") or raw.get("status") or data.get("status")
        qr_code_url = str(raw.get("qr_code_url") or "").strip()
        payment_link = str(data.get("payment_link") or raw.get("payment_link") or "").strip()

        return StatusResult(
            status="ok",
            entry=EntryStatus(
                unique_code=normalize_code(str(raw.get("unique_code") or "")) or code,
                status=(str(status).upper() if status else None),
                qr_code_url=(self._absolute_url(qr_code_url) if qr_code_url else None),
                payment_link=payment_link or None,
            ),
        )

    def get_registration_result(self, unique_code: str) -> RegistrationResult:
        code = normalize_code(unique_code)
        if not code:
            return RegistrationResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found.")

        status_code, data, error = self._get_json(f"register/result/{quote(code)}")
        return self._registration_result(status_code, data, error)

    def list_island_entries(self) -> EntryListResult:
        status_code, data, error = self._get_json("island-entry")
        if error:
            return EntryListResult(status="error", error_kind=self._failure_kind(status_code, error), error=error)

        rows: Any = data
        if isinstance(data, dict):
            rows = data.get("entries") or data.get("registrations") or data.get("data") or []
        if not isinstance(rows, list):
            return EntryListResult(status="error", error_kind=ErrorKind.NETWORK, error="Invalid backend response")

        entries: list[Registration] = []
        for row in rows:
            registration = self._parse_registration(row)
            if registration is None:
                logger.warning("Skipping island entry without unique_code: %r", row)
                continue
            entries.append(registration)
        return EntryListResult(status="ok", entries=tuple(entries))

    def get_entry_members(self, unique_code: str) -> EntryLookupResult:
        code = normalize_code(unique_code)
        if not code:
            return EntryLookupResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found.")

        status_code, data, error = self._get_json(f"island-entry/members/{quote(code)}")
        if error:
            return EntryLookupResult(status="error", error_kind=self._failure_kind(status_code, error), error=error)

        registration = self._parse_registration(data)
        if registration is None:
            return EntryLookupResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found.")

        members_raw = data.get("members") if isinstance(data, dict) else None
        members: list[Member] = []
        if isinstance(members_raw, list):
            members = [self._parse_member(m) for m in members_raw if isinstance(m, dict)]
        return EntryLookupResult(status="ok", registration=registration, members=tuple(members))

    # --- Staff actions ---

    def _action(self, path: str, unique_code: str) -> ActionResult:
        code = normalize_code(unique_code)
        if not code:
            return ActionResult(status="error", error_kind=ErrorKind.VALIDATION, error="Unique code is required.")

        status_code, data, error = self._post_json(path, {"unique_code": code})
        if error:
            return ActionResult(status="error", error_kind=self._failure_kind(status_code, error), error=error)

        message = None
        if isinstance(data, dict):
            message = str(data.get("message") or "").strip() or None
        return ActionResult(status="ok", message=message)

    def check_in(self, unique_code: str) -> ActionResult:
        # 404: unknown code, 409: the group already entered today.
        return self._action("island-entry/manual-check-in", unique_code)

    def mark_paid(self, unique_code: str) -> ActionResult:
        return self._action("island-entry/mark-paid", unique_code)
