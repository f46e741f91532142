"""
API schemas for ddLOG.

Wire names are camelCase (e.g. reminder_time -> "reminderTime"); both
spellings are accepted on input. Length rules for tasks are checked in
TaskStore after trimming, so request models only pin down types here.
"""
from datetime import date, datetime
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .database import as_utc

T = TypeVar("T")

# SQLite returns naive datetimes; everything stored is UTC.
UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(ApiModel, Generic[T]):
    success: bool = True
    data: T


class MessageOut(ApiModel):
    success: bool = True
    message: str


# Auth

class PinIn(ApiModel):
    pin: str = Field(..., description="6-digit numeric PIN")


class AuthStatusOut(ApiModel):
    has_user: bool
    requires_setup: bool


class SetupOut(ApiModel):
    message: str = "User created successfully"
    user_id: str


class UserOut(ApiModel):
    id: str
    failed_attempts: int
    locked_until: Optional[UtcDateTime] = None
    created_at: UtcDateTime


class LoginOut(ApiModel):
    token: str
    user: UserOut


# Tasks

class TaskIn(ApiModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    reminder_time: Optional[str] = None


class TaskUpdate(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    reminder_time: Optional[str] = None
    completed: Optional[bool] = None


class TaskOut(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    reminder_time: Optional[str] = None
    completed: bool
    created_at: UtcDateTime
    updated_at: UtcDateTime
    completed_at: Optional[UtcDateTime] = None


class HeatmapDayOut(ApiModel):
    date: date
    count: int = Field(..., ge=0, le=100)
    level: int = Field(..., ge=0, le=4)

