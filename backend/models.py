"""
Donor, organ request and match records used by the matching engine.

Store items arrive as plain dicts (DynamoDB ``Items``) with camelCase keys
written by the web app, or snake_case keys from older seed data. The pydantic
models accept both spellings and reject malformed enum values up front so the
scoring code never has to guess.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from backend.exceptions import InvalidRecordError

logger = logging.getLogger(__name__)


class BloodType(str, Enum):
    O_NEGATIVE = "O-"
    O_POSITIVE = "O+"
    A_NEGATIVE = "A-"
    A_POSITIVE = "A+"
    B_NEGATIVE = "B-"
    B_POSITIVE = "B+"
    AB_NEGATIVE = "AB-"
    AB_POSITIVE = "AB+"


class UrgencyLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @classmethod
    def parse(cls, value) -> "RequestStatus":
        try:
            return cls(str(value).strip().capitalize())
        except ValueError:
            raise InvalidRecordError(f"Unknown request status: {value!r}") from None

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


def normalize_organ(name):
    return str(name).strip().lower()


def _blood_type_text(value):
    """Blank means unknown; otherwise compare without case or spaces"""
    if isinstance(value, str):
        value = value.strip().upper().replace(" ", "")
        return value or None
    return value


def _capitalized(value):
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


def _invalid_record(kind, item, error):
    """Flatten a pydantic error into one message naming each bad field and value"""
    problems = []
    for e in error.errors():
        field = ".".join(str(p) for p in e["loc"]) or kind
        problem = f"{field}: {e['msg']}"
        if "input" in e and not isinstance(e["input"], dict):
            problem += f" (got {e['input']!r})"
        problems.append(problem)
    record_id = item.get("id") if isinstance(item, dict) else None
    return InvalidRecordError(f"Invalid {kind} record {record_id!r}: " + "; ".join(problems))


class Donor(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(validation_alias=AliasChoices("id", "donor_id"))
    name: str = "Unknown"
    blood_type: Optional[BloodType] = Field(
        default=None, validation_alias=AliasChoices("blood_type", "bloodType"))
    date_of_birth: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("date_of_birth", "dateOfBirth"))
    organs: FrozenSet[str] = Field(
        default=frozenset(), validation_alias=AliasChoices("organs", "organ_type"))

    normalize_blood_type = field_validator("blood_type", mode="before")(_blood_type_text)

    @field_validator("date_of_birth", mode="wrap")
    @classmethod
    def ignore_bad_birth_date(cls, value, handler):
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            value = value.date()
        elif isinstance(value, str):
            value = value.strip()[:10]
        try:
            return handler(value)
        except ValidationError:
            logger.warning("Ignoring unparseable date of birth %r", value)
            return None

    @field_validator("organs", mode="before")
    @classmethod
    def normalize_organs(cls, value):
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(normalize_organ(o) for o in value if str(o).strip())

    @classmethod
    def from_item(cls, item: dict) -> "Donor":
        try:
            return cls.model_validate(item)
        except ValidationError as e:
            raise _invalid_record("donor", item, e) from e

    def age_in(self, year: int) -> Optional[int]:
        """Whole-year age approximation: year difference only, birthdays ignored"""
        if self.date_of_birth is None:
            return None
        return year - self.date_of_birth.year

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "bloodType": self.blood_type.value if self.blood_type else None,
            "dateOfBirth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "organs": sorted(self.organs),
        }


class OrganRequest(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(validation_alias=AliasChoices("id", "request_id", "recipient_id"))
    patient_id: str = Field(default="", validation_alias=AliasChoices("patient_id", "patientId"))
    patient_name: str = Field(
        default="Unknown", validation_alias=AliasChoices("patient_name", "patientName", "name"))
    age: Optional[int] = None
    blood_type: Optional[BloodType] = Field(
        default=None, validation_alias=AliasChoices("blood_type", "bloodType"))
    required_organ: str = Field(
        validation_alias=AliasChoices("required_organ", "requiredOrgan", "organ_needed"))
    hospital_name: str = Field(default="", validation_alias=AliasChoices("hospital_name", "hospitalName"))
    urgency_level: UrgencyLevel = Field(validation_alias=AliasChoices("urgency_level", "urgencyLevel"))
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = Field(validation_alias=AliasChoices("created_at", "createdAt"))

    normalize_blood_type = field_validator("blood_type", mode="before")(_blood_type_text)
    normalize_enums = field_validator("urgency_level", "status", mode="before")(_capitalized)

    @field_validator("age", mode="before")
    @classmethod
    def blank_age(cls, value):
        return None if value == "" else value

    @field_validator("required_organ")
    @classmethod
    def normalize_required_organ(cls, value):
        value = normalize_organ(value)
        if not value:
            raise ValueError("required organ is empty")
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def epoch_seconds(cls, value):
        # DynamoDB numbers arrive as Decimal
        if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
            try:
                return float(value)
            except OverflowError:
                raise ValueError(f"timestamp out of range: {value}") from None
        return value

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, value):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_item(cls, item: dict) -> "OrganRequest":
        try:
            return cls.model_validate(item)
        except ValidationError as e:
            raise _invalid_record("organ request", item, e) from e

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "patientName": self.patient_name,
            "age": self.age,
            "bloodType": self.blood_type.value if self.blood_type else None,
            "requiredOrgan": self.required_organ,
            "hospitalName": self.hospital_name,
            "urgencyLevel": self.urgency_level.value,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Match:
    request: OrganRequest
    compatible_donors: List[Donor]
    match_score: int
    urgency_level: UrgencyLevel
    time_on_list: int  # whole days

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "compatibleDonors": [d.to_dict() for d in self.compatible_donors],
            "matchScore": self.match_score,
            "urgencyLevel": self.urgency_level.value,
            "timeOnList": self.time_on_list,
        }


@dataclass(frozen=True)
class CompatiblePair:
    donor: Donor
    request: OrganRequest
    compatibility: int  # percent, 0-100

    def to_dict(self) -> dict:
        return {
            "donorId": self.donor.id,
            "donorName": self.donor.name,
            "requestId": self.request.id,
            "patientName": self.request.patient_name,
            "organType": self.request.required_organ,
            "bloodType": self.request.blood_type.value if self.request.blood_type else None,
            "compatibility": self.compatibility,
        }
