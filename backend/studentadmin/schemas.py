"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Field-level checks (blank names, phone
format, empty activity lists) live here; cross-record rules are applied
by the services.
"""

from datetime import date
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional

PHONE_PATTERN = r"^\d{10}$"
EMAIL_PATTERN = r"^[\w.+-]+@([\w-]+\.)+[\w-]{2,}$"


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    token_type: str = "bearer"
    expires_at: int


class UserIn(BaseModel):
    """Payload for provisioning a new credential (admin only)."""
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=6)
    roles: List[str] = Field(default_factory=lambda: ["USER"], min_length=1)

    @field_validator("username")
    @classmethod
    def _username(cls, v: str) -> str:
        return _not_blank(v)


class UserOut(BaseModel):
    id: int
    username: str
    roles: List[str]


class IdentityOut(BaseModel):
    username: str
    roles: List[str]


class GradeIn(BaseModel):
    grade: str = Field(max_length=4)
    standard: int = Field(ge=1, le=12)

    @field_validator("grade")
    @classmethod
    def _grade(cls, v: str) -> str:
        return _not_blank(v).upper()


class GradeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    grade: str
    standard: int


class MembershipIn(BaseModel):
    """A membership is created from its type alone; dates are computed."""
    membership_type: str


class MembershipDatesIn(BaseModel):
    """Administrative override of a membership's dates."""
    start_date: date
    expiry_date: date

    @model_validator(mode="after")
    def _ordered(self):
        if self.expiry_date <= self.start_date:
            raise ValueError("expiry_date must be after start_date")
        return self


class MembershipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    membership_type: str
    start_date: date
    expiry_date: date


class ActivityIn(BaseModel):
    name: str = Field(max_length=100)
    activity_type: str = Field(max_length=100)

    @field_validator("name", "activity_type")
    @classmethod
    def _text(cls, v: str) -> str:
        return _not_blank(v)


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    activity_type: str


class StudentInput(BaseModel):
    """Flat student record referencing its grade, membership and activities by id.

    Both registration and update take the full record; update replaces
    every field and association.
    """
    first_name: str
    last_name: str
    phone_no: str = Field(pattern=PHONE_PATTERN)
    email: str = Field(pattern=EMAIL_PATTERN)
    address: str
    dob: date
    grade_id: int
    membership_id: int
    activity_ids: List[int] = Field(min_length=1)

    @field_validator("first_name", "last_name", "address")
    @classmethod
    def _text(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("dob")
    @classmethod
    def _dob_in_past(cls, v: date) -> date:
        if v >= date.today():
            raise ValueError("date of birth must be in the past")
        return v


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    phone_no: str
    email: str
    address: str
    dob: date
    grade: GradeOut
    membership: MembershipOut
    activities: List[ActivityOut]


class MessageOut(BaseModel):
    detail: str
    id: Optional[int] = None
