from __future__ import annotations

from typing import Any, Callable

from island_entry.backend.client import (
    ActionResult,
    EntryListResult,
    EntryLookupResult,
    EntryStatus,
    ErrorKind,
    Fee,
    FeeResult,
    Registration,
    RegistrationResult,
    StatusResult,
)


def member(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": "Juan Dela Cruz",
        "age": 30,
        "sex": "Male",
        "is_foreign": False,
        "municipality": "Coron",
        "province": "Palawan",
        "country": "",
    }
    data.update(overrides)
    return data


def payload(size: int, payment_method: str) -> dict[str, Any]:
    return {
        "groupMembers": [member(name=f"Visitor {chr(65 + i)}") for i in range(size)],
        "payment_method": payment_method,
    }


class FakeBackend:
    """In-memory backend that records every call made to it."""

    def __init__(self, *, fee: Fee | None = Fee(amount=50.0, is_enabled=True)) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.fee_result = (
            FeeResult(status="ok", fee=fee)
            if fee is not None
            else FeeResult(status="error", error_kind=ErrorKind.NETWORK, error="HTTP 500")
        )
        self.registrations: dict[str, Registration] = {}
        self.next_failure: RegistrationResult | None = None
        self.on_register: Callable[[], None] | None = None
        self.check_in_result = ActionResult(status="ok", message="Island entry group checked in manually.")
        self._counter = 0

    def _new_code(self) -> str:
        self._counter += 1
        return f"A{self._counter}B{self._counter}C{self._counter}"

    def _create(self, payment_link: str | None, total_fee: float | None = None) -> RegistrationResult:
        if self.on_register is not None:
            self.on_register()
        if self.next_failure is not None:
            failure, self.next_failure = self.next_failure, None
            return failure
        code = self._new_code()
        registration = Registration(
            unique_code=code,
            qr_code_url=f"https://qr.example/{code}.png",
            payment_link=payment_link,
            status="PENDING" if payment_link else "PAID",
            total_fee=total_fee,
        )
        self.registrations[code] = registration
        return RegistrationResult(status="ok", registration=registration)

    def get_active_fee(self) -> FeeResult:
        self.calls.append(("get_active_fee", None))
        return self.fee_result

    def register_visitors(self, group_members, idempotency_key=None) -> RegistrationResult:
        self.calls.append(("register_visitors", {"groupMembers": group_members, "key": idempotency_key}))
        return self._create(payment_link=None)

    def register_island_entry(self, payload, idempotency_key=None) -> RegistrationResult:
        self.calls.append(("register_island_entry", {"payload": payload, "key": idempotency_key}))
        return self._create(payment_link="https://pm.link/checkout/123", total_fee=payload.get("total_fee"))

    def register_island_walk_in(self, group_members) -> RegistrationResult:
        self.calls.append(("register_island_walk_in", group_members))
        return self._create(payment_link=None)

    def get_entry_status(self, unique_code) -> StatusResult:
        self.calls.append(("get_entry_status", unique_code))
        registration = self.registrations.get(unique_code)
        if registration is None:
            return StatusResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found.")
        return StatusResult(
            status="ok",
            entry=EntryStatus(
                unique_code=registration.unique_code,
                status=registration.status,
                qr_code_url=registration.qr_code_url,
                payment_link=registration.payment_link,
            ),
        )

    def get_registration_result(self, unique_code) -> RegistrationResult:
        self.calls.append(("get_registration_result", unique_code))
        registration = self.registrations.get(unique_code)
        if registration is None:
            return RegistrationResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="HTTP 404")
        return RegistrationResult(status="ok", registration=registration)

    def list_island_entries(self) -> EntryListResult:
        self.calls.append(("list_island_entries", None))
        return EntryListResult(status="ok", entries=tuple(self.registrations.values()))

    def get_entry_members(self, unique_code) -> EntryLookupResult:
        self.calls.append(("get_entry_members", unique_code))
        registration = self.registrations.get(unique_code)
        if registration is None:
            return EntryLookupResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Entry not found with that code.")
        return EntryLookupResult(status="ok", registration=registration)

    def check_in(self, unique_code) -> ActionResult:
        self.calls.append(("check_in", unique_code))
        return self.check_in_result

    def mark_paid(self, unique_code) -> ActionResult:
        self.calls.append(("mark_paid", unique_code))
        registration = self.registrations.get(unique_code)
        if registration is None:
            return ActionResult(status="error", error_kind=ErrorKind.NOT_FOUND, error="Registration not found")
        self.registrations[unique_code] = Registration(
            unique_code=registration.unique_code,
            qr_code_url=registration.qr_code_url,
            payment_link=registration.payment_link,
            status="PAID",
        )
        return ActionResult(status="ok", message="Payment marked as PAID")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]
