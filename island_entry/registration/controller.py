"""Island entry registration workflow.

The controller backs one registration screen (or one HTTP request). It
validates the submitted group, routes it to the walk-in or the online-payment
endpoint and keeps the state the screen renders: ``loading``, ``result``,
``payment_link``, ``fee``, ``error`` and the staff listing ``entries``.

Every operation returns a result object from ``backend.client``; expected
failures are never raised. A ``CancelToken`` passed to an operation stops it
from committing state once the caller has gone away.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any

from ..backend.client import (
    ActionResult,
    EntryListResult,
    EntryLookupResult,
    ErrorKind,
    Fee,
    FeeResult,
    IslandEntryBackend,
    Registration,
    RegistrationResult,
    StatusResult,
)
from ..storage.submission_store import SubmissionStore
from .cancel import CancelToken, is_cancelled
from .fee import FEE_UNAVAILABLE_ERROR, FeeConfig
from .schema import ONLINE_MIN_GROUP_SIZE, RegistrationPayload, validate_members, validate_registration

logger = logging.getLogger(__name__)

ONLINE_GROUP_SIZE_ERROR = "Online payment is only allowed for groups of 3 or more."
IN_PROGRESS_ERROR = "A registration is already in progress."


class IslandEntryController:
    def __init__(
        self,
        backend: IslandEntryBackend,
        fee_config: FeeConfig,
        *,
        submissions: SubmissionStore | Any | None = None,
    ) -> None:
        self._backend = backend
        self._fee_config = fee_config
        self._submissions = submissions

        self.loading = False
        self.result: Registration | None = None
        self.payment_link: str | None = None
        self.fee: Fee | None = fee_config.fee
        self.error: str | None = None
        self.entries: tuple[Registration, ...] = ()

        self._state_lock = threading.Lock()
        self._inflight = threading.Lock()

    def _set_loading(self, value: bool) -> None:
        with self._state_lock:
            self.loading = value

    def _fail(
        self,
        kind: ErrorKind,
        message: str,
        cancel: CancelToken | None = None,
    ) -> RegistrationResult:
        if not is_cancelled(cancel):
            with self._state_lock:
                self.error = message
        return RegistrationResult(status="error", error_kind=kind, error=message)

    def _commit(self, registration: Registration, cancel: CancelToken | None) -> None:
        if is_cancelled(cancel):
            logger.info("Registration %s completed after cancellation; state not updated", registration.unique_code)
            return
        with self._state_lock:
            self.result = registration
            self.payment_link = registration.payment_link
            self.error = None

    # --- Fee ---

    def fetch_fee(self, cancel: CancelToken | None = None) -> FeeResult:
        self._set_loading(True)
        try:
            result = self._fee_config.get()
            if not is_cancelled(cancel):
                with self._state_lock:
                    self.fee = result.fee if result.ok else None
            if not result.ok:
                logger.warning("Entry fee unavailable: %s", result.error)
            return result
        finally:
            self._set_loading(False)

    # --- Registration ---

    def register(
        self,
        payload: RegistrationPayload | dict[str, Any],
        *,
        cancel: CancelToken | None = None,
        idempotency_key: str | None = None,
    ) -> RegistrationResult:
        outcome = validate_registration(payload)
        if not outcome.ok or outcome.payload is None:
            return self._fail(ErrorKind.VALIDATION, outcome.error or "Invalid registration payload", cancel)
        data = outcome.payload

        # Checked locally; no request is made for groups that are too small.
        if data.payment_method.is_online and data.group_size < ONLINE_MIN_GROUP_SIZE:
            return self._fail(ErrorKind.BUSINESS_RULE, ONLINE_GROUP_SIZE_ERROR, cancel)

        if not self._inflight.acquire(blocking=False):
            logger.warning("Rejected duplicate submission while a registration is in flight")
            return self._fail(ErrorKind.BUSINESS_RULE, IN_PROGRESS_ERROR, cancel)

        try:
            reserved = False
            if idempotency_key and self._submissions is not None:
                previous = self._submissions.get(idempotency_key)
                if previous is not None:
                    logger.info("Idempotency-Key %s already registered as %s", idempotency_key, previous.unique_code)
                    self._commit(previous, cancel)
                    return RegistrationResult(status="ok", registration=previous)
                if not self._submissions.reserve(idempotency_key):
                    logger.warning("Idempotency-Key %s is already being processed", idempotency_key)
                    return self._fail(ErrorKind.BUSINESS_RULE, IN_PROGRESS_ERROR, cancel)
                reserved = True

            result: RegistrationResult | None = None
            try:
                result = self._submit(data, cancel, idempotency_key or str(uuid.uuid4()))
                return result
            finally:
                if reserved:
                    self._settle(idempotency_key, result)
        finally:
            self._inflight.release()

    def _settle(self, idempotency_key: str, result: RegistrationResult | None) -> None:
        # A key whose call failed or raised is freed so the visitor can retry.
        if result is not None and result.ok and result.registration is not None:
            self._submissions.save(idempotency_key, result.registration)
        else:
            self._submissions.release(idempotency_key)

    def _submit(
        self,
        data: RegistrationPayload,
        cancel: CancelToken | None,
        idempotency_key: str,
    ) -> RegistrationResult:
        online = data.payment_method.is_online
        total_fee = 0.0

        if online:
            # Only the already-loaded fee is used; FeeConfig refreshes it elsewhere.
            fee = self._fee_config.fee
            if fee is None:
                last_error = self._fee_config.last_error
                logger.error(
                    "Online registration refused: entry fee unavailable (%s)",
                    last_error.error if last_error else "not loaded",
                )
                return self._fail(ErrorKind.CONFIGURATION, FEE_UNAVAILABLE_ERROR, cancel)
            if not is_cancelled(cancel):
                with self._state_lock:
                    self.fee = fee
            if not fee.is_enabled:
                # Nothing to pay while the fee is switched off.
                online = False
            else:
                total_fee = fee.amount * data.group_size

        self._set_loading(True)
        try:
            if online:
                result = self._backend.register_island_entry(
                    {
                        "groupMembers": data.members_json(),
                        "payment_method": data.payment_method.value,
                        "total_fee": total_fee,
                    },
                    idempotency_key=idempotency_key,
                )
            else:
                result = self._backend.register_visitors(data.members_json(), idempotency_key=idempotency_key)

            if not result.ok or result.registration is None:
                logger.warning("Registration failed (%s): %s", result.error_kind, result.error)
                return self._fail(
                    result.error_kind or ErrorKind.NETWORK,
                    result.error or "Registration failed.",
                    cancel,
                )

            registration = result.registration
            if not online and registration.payment_link:
                registration = Registration(
                    unique_code=registration.unique_code,
                    qr_code_url=registration.qr_code_url,
                    payment_method=registration.payment_method,
                    status=registration.status,
                    total_fee=registration.total_fee,
                )
            self._commit(registration, cancel)
            logger.info(
                "Registered group of %s as %s (%s)",
                data.group_size,
                registration.unique_code,
                "online" if online else "walk-in",
            )
            return RegistrationResult(status="ok", registration=registration)
        finally:
            self._set_loading(False)

    def register_walk_in(
        self,
        group_members: list[dict[str, Any]],
        *,
        cancel: CancelToken | None = None,
    ) -> RegistrationResult:
        """Staff-side island walk-in: the group is registered and logged as entered."""

        outcome = validate_members(group_members)
        if not outcome.ok or outcome.payload is None:
            return self._fail(ErrorKind.VALIDATION, outcome.error or "Invalid group members", cancel)

        self._set_loading(True)
        try:
            result = self._backend.register_island_walk_in(outcome.payload.members_json())
            if not result.ok or result.registration is None:
                return self._fail(result.error_kind or ErrorKind.NETWORK, result.error or "Registration failed.", cancel)
            self._commit(result.registration, cancel)
            return result
        finally:
            self._set_loading(False)

    # --- Lookup ---

    def check_payment_status(self, unique_code: str, cancel: CancelToken | None = None) -> StatusResult:
        result = self._backend.get_entry_status(unique_code)
        if not result.ok:
            logger.warning("Failed to fetch payment status for %r: %s", unique_code, result.error)
        if is_cancelled(cancel):
            logger.debug("Payment status for %r arrived after cancellation", unique_code)
        return result

    def get_all_island_entries(self, cancel: CancelToken | None = None) -> EntryListResult:
        self._set_loading(True)
        try:
            result = self._backend.list_island_entries()
            if not result.ok:
                # Error results carry no entries, so list views render them as empty.
                logger.warning("Failed to list island entries: %s", result.error)
            if is_cancelled(cancel):
                logger.debug("Island entry listing arrived after cancellation; state not updated")
            else:
                with self._state_lock:
                    self.entries = result.entries
            return result
        finally:
            self._set_loading(False)

    def lookup_entry(self, unique_code: str) -> EntryLookupResult:
        result = self._backend.get_entry_members(unique_code)
        if not result.ok:
            logger.info("Lookup failed for %r: %s", unique_code, result.error)
        return result

    # --- Staff actions ---

    def check_in(self, unique_code: str) -> ActionResult:
        lookup = self._backend.get_entry_members(unique_code)
        if not lookup.ok or lookup.registration is None:
            return ActionResult(status="error", error_kind=lookup.error_kind, error=lookup.error)

        # Unpaid online registrations cannot enter yet.
        registration = lookup.registration
        if registration.status and registration.status not in {"PAID", "NOT_REQUIRED"}:
            return ActionResult(
                status="error",
                error_kind=ErrorKind.BUSINESS_RULE,
                error="Payment has not been received for this entry.",
            )

        result = self._backend.check_in(unique_code)
        if result.ok:
            logger.info("Checked in island entry %s", registration.unique_code)
        return result

    def mark_paid(self, unique_code: str) -> ActionResult:
        result = self._backend.mark_paid(unique_code)
        if result.ok:
            logger.info("Marked island entry %s as paid", unique_code)
        return result
