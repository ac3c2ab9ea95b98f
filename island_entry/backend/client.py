from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    CONFIGURATION = "configuration"


@dataclass(frozen=True)
class Fee:
    amount: float
    is_enabled: bool


@dataclass(frozen=True)
class FeeResult:
    status: str  # "ok" | "error"
    fee: Fee | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class Registration:
    unique_code: str
    qr_code_url: str
    payment_link: str | None = None
    payment_method: str | None = None
    status: str | None = None  # payment status, e.g. "PENDING" | "PAID"
    total_fee: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"unique_code": self.unique_code, "qr_code_url": self.qr_code_url}
        if self.payment_link:
            out["payment_link"] = self.payment_link
        if self.payment_method:
            out["payment_method"] = self.payment_method
        if self.status:
            out["status"] = self.status
        if self.total_fee is not None:
            out["total_fee"] = self.total_fee
        return out


@dataclass(frozen=True)
class RegistrationResult:
    status: str  # "ok" | "error"
    registration: Registration | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class Member:
    name: str
    age: int | None = None
    sex: str | None = None
    is_foreign: bool = False
    municipality: str | None = None
    province: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class EntryStatus:
    unique_code: str
    status: str | None = None
    qr_code_url: str | None = None
    payment_link: str | None = None


@dataclass(frozen=True)
class StatusResult:
    status: str  # "ok" | "error"
    entry: EntryStatus | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class EntryListResult:
    status: str  # "ok" | "error"
    entries: tuple[Registration, ...] = ()
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class EntryLookupResult:
    status: str  # "ok" | "error"
    registration: Registration | None = None
    members: tuple[Member, ...] = ()
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class ActionResult:
    status: str  # "ok" | "error"
    message: str | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class IslandEntryBackend(Protocol):
    def get_active_fee(self) -> FeeResult: ...

    def register_visitors(
        self,
        group_members: list[dict[str, Any]],
        idempotency_key: str | None = None,
    ) -> RegistrationResult: ...

    def register_island_entry(
        self,
        payload: dict[str, Any],
        idempotency_key: str | None = None,
    ) -> RegistrationResult: ...

    def register_island_walk_in(self, group_members: list[dict[str, Any]]) -> RegistrationResult: ...

    def get_entry_status(self, unique_code: str) -> StatusResult: ...

    def get_registration_result(self, unique_code: str) -> RegistrationResult: ...

    def list_island_entries(self) -> EntryListResult: ...

    def get_entry_members(self, unique_code: str) -> EntryLookupResult: ...

    def check_in(self, unique_code: str) -> ActionResult: ...

    def mark_paid(self, unique_code: str) -> ActionResult: ...
