"""Validation of island entry registration payloads.

Forms submit loosely typed values ("Online", "25", "male"). The models below
normalize them and report violations with the messages shown to visitors.
Only the first message is displayed, so rules are declared in the order the
form presents its fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from .countries import canonical_country

ONLINE_MIN_GROUP_SIZE = 3

_LETTERS_AND_SPACES = re.compile(r"^[A-Za-zÑñ\s]+$")
_SEXES = {"male": "Male", "female": "Female"}


class PaymentMethod(str, Enum):
    ONLINE = "ONLINE"
    WALK_IN = "WALK_IN"
    CASH = "CASH"
    NOT_REQUIRED = "NOT_REQUIRED"

    @property
    def is_online(self) -> bool:
        return self is PaymentMethod.ONLINE


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class GroupMember(BaseModel):
    model_config = ConfigDict(validate_default=True)

    name: str = ""
    age: int = 0
    sex: str = ""
    is_foreign: bool = False
    municipality: str = ""
    province: str = ""
    country: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, value: Any) -> str:
        name = " ".join(_text(value).split())
        if len(name) < 2:
            raise PydanticCustomError("name_required", "Name is required")
        if not _LETTERS_AND_SPACES.match(name):
            raise PydanticCustomError("name_letters", "Name must contain only letters and spaces")
        return name

    @field_validator("age", mode="before")
    @classmethod
    def _check_age(cls, value: Any) -> int:
        if isinstance(value, bool):
            value = None
        elif isinstance(value, float) and value.is_integer():
            value = int(value)
        try:
            age = int(_text(value))
        except ValueError:
            age = -1
        if not 0 <= age <= 120:
            raise PydanticCustomError("age_invalid", "Age must be a valid number between 0 and 120")
        return age

    @field_validator("sex", mode="before")
    @classmethod
    def _check_sex(cls, value: Any) -> str:
        sex = _text(value)
        if not sex:
            raise PydanticCustomError("sex_required", "Sex is required")
        normalized = _SEXES.get(sex.lower())
        if normalized is None:
            raise PydanticCustomError("sex_invalid", "Please select a valid sex")
        return normalized

    @field_validator("municipality", mode="before")
    @classmethod
    def _check_municipality(cls, value: Any, info: ValidationInfo) -> str:
        return _local_place(value, info, "municipality_required", "Municipality is required")

    @field_validator("province", mode="before")
    @classmethod
    def _check_province(cls, value: Any, info: ValidationInfo) -> str:
        return _local_place(value, info, "province_required", "Province is required")

    @field_validator("country", mode="before")
    @classmethod
    def _check_country(cls, value: Any, info: ValidationInfo) -> str:
        country = _text(value)
        if not country:
            if info.data.get("is_foreign"):
                raise PydanticCustomError("country_required", "Country is required for foreign visitors")
            return ""
        canonical = canonical_country(country)
        if canonical is None:
            raise PydanticCustomError("country_invalid", "Please select a valid country")
        return canonical


def _local_place(value: Any, info: ValidationInfo, error_type: str, message: str) -> str:
    place = " ".join(_text(value).split())
    # Foreign visitors are not asked for a Philippine municipality/province.
    if info.data.get("is_foreign"):
        return place
    if len(place) < 2 or not _LETTERS_AND_SPACES.match(place):
        raise PydanticCustomError(error_type, message)
    return place


class RegistrationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_default=True)

    group_members: list[GroupMember] = Field(default_factory=list, alias="groupMembers")
    payment_method: PaymentMethod = PaymentMethod.WALK_IN

    @field_validator("group_members")
    @classmethod
    def _check_group(cls, value: list[GroupMember]) -> list[GroupMember]:
        if not value:
            raise PydanticCustomError("group_required", "At least one group member is required")
        return value

    @field_validator("payment_method", mode="before")
    @classmethod
    def _check_payment_method(cls, value: Any) -> PaymentMethod:
        if isinstance(value, PaymentMethod):
            return value
        raw = _text(value).upper().replace("-", "_").replace(" ", "_")
        if not raw:
            return PaymentMethod.WALK_IN
        try:
            return PaymentMethod(raw)
        except ValueError:
            raise PydanticCustomError("payment_method_invalid", "Please select a valid payment method") from None

    @property
    def group_size(self) -> int:
        return len(self.group_members)

    def members_json(self) -> list[dict[str, Any]]:
        return [member.model_dump() for member in self.group_members]


@dataclass(frozen=True)
class ValidationOutcome:
    payload: RegistrationPayload | None = None
    member: GroupMember | None = None
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def error(self) -> str | None:
        return self.errors[0] if self.errors else None


def _messages(exc: ValidationError) -> tuple[str, ...]:
    return tuple(str(err.get("msg") or "Invalid value") for err in exc.errors())


def validate_registration(raw: Any) -> ValidationOutcome:
    if isinstance(raw, RegistrationPayload):
        return ValidationOutcome(payload=raw)
    if not isinstance(raw, dict):
        return ValidationOutcome(errors=("Invalid registration payload",))
    try:
        return ValidationOutcome(payload=RegistrationPayload.model_validate(raw))
    except ValidationError as exc:
        return ValidationOutcome(errors=_messages(exc))


def validate_member(raw: Any) -> ValidationOutcome:
    if isinstance(raw, GroupMember):
        return ValidationOutcome(member=raw)
    if not isinstance(raw, dict):
        return ValidationOutcome(errors=("Invalid group member",))
    try:
        return ValidationOutcome(member=GroupMember.model_validate(raw))
    except ValidationError as exc:
        return ValidationOutcome(errors=_messages(exc))


def validate_members(raw_members: Any) -> ValidationOutcome:
    """Validate a bare list of members (staff walk-in form)."""

    if not isinstance(raw_members, list):
        return ValidationOutcome(errors=("At least one group member is required",))
    return validate_registration({"groupMembers": raw_members, "payment_method": PaymentMethod.WALK_IN.value})
