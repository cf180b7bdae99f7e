"""
Calendar data model: Timeslot, Meeting, Position.

Timeslots and meetings are immutable pydantic models; edits produce copies
(``model_copy``/``with_time``). Wire format follows the JSON API:

    Timeslot: { id, from: ISO-8601, to: ISO-8601, recur?, exdates?: ISO-8601[], last? }
    Meeting:  { id, time: Timeslot, subjects, notes, matchId, participants,
                status, parentId?, created?, updated? }
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from meetgrid.errors import ValidationError

DEFAULT_TEMP_PREFIX = "temp-"

# Shape check only; recurrence expansion happens elsewhere.
RRULE_RE = re.compile(
    r"^RRULE:FREQ=(WEEKLY|DAILY);?(INTERVAL=2;?)?"
    r"(UNTIL=(\d{4})(\d{2})(\d{2})(T(\d{2})(\d{2})(\d{2})Z?)?)?$"
)

MeetingStatus = Literal["created", "pending", "logged", "approved"]


def new_token(length: int = 10) -> str:
    return uuid.uuid4().hex[:length]


def new_temporary_id(prefix: str = DEFAULT_TEMP_PREFIX) -> str:
    """Client-side id for a meeting the store has not created yet."""
    return f"{prefix}{new_token()}"


def is_temporary_id(meeting_id: str, prefix: str = DEFAULT_TEMP_PREFIX) -> bool:
    return meeting_id.startswith(prefix)


@dataclass(frozen=True)
class Position:
    """Pixel coordinates relative to the origin of the first day column."""

    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float = 0.0, dy: float = 0.0) -> Position:
        return Position(self.x + dx, self.y + dy)


class Timeslot(BaseModel):
    """A bounded interval of time, optionally recurring.

    ``from`` is a Python keyword so the field is ``from_`` with the wire alias
    ``from``. Both names are accepted on input.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: new_token(5))
    from_: datetime = Field(alias="from")
    to: datetime
    exdates: Optional[list[datetime]] = None
    recur: Optional[str] = None
    last: Optional[datetime] = None

    @field_validator("recur")
    @classmethod
    def _check_recur(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not RRULE_RE.match(value):
            raise ValueError(f"Unsupported recurrence rule: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_order(self) -> Timeslot:
        if self.from_ >= self.to:
            raise ValueError(
                f"Timeslot must start before it ends (from={self.from_.isoformat()}, "
                f"to={self.to.isoformat()})"
            )
        return self

    @classmethod
    def create(cls, from_: datetime, to: datetime, **fields: Any) -> Timeslot:
        """Validated constructor raising :class:`meetgrid.errors.ValidationError`."""
        try:
            return cls(from_=from_, to=to, **fields)
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e), errors=e.errors(include_url=False)) from e

    @property
    def duration_minutes(self) -> float:
        return (self.to - self.from_).total_seconds() / 60

    def overlaps(self, other: Timeslot) -> bool:
        """Strict overlap; slots that only touch at an endpoint do not overlap."""
        return self.to > other.from_ and self.from_ < other.to

    def contains(self, other: Timeslot) -> bool:
        return other.from_ >= self.from_ and other.to <= self.to

    def with_range(self, from_: datetime, to: datetime) -> Timeslot:
        """Copy with new bounds; id, recur and exdates carry over."""
        return Timeslot.create(
            from_,
            to,
            id=self.id,
            exdates=self.exdates,
            recur=self.recur,
            last=self.last,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Timeslot:
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e), errors=e.errors(include_url=False)) from e


class Meeting(BaseModel):
    """A scheduled meeting occupying one timeslot on the grid."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = ""
    time: Timeslot
    subjects: list[str] = Field(default_factory=list)
    notes: str = ""
    match_id: str = Field(default="", alias="matchId")
    participants: list[str] = Field(default_factory=list)
    status: MeetingStatus = "created"
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    created: Optional[datetime] = None
    updated: Optional[datetime] = None

    def is_temporary(self, prefix: str = DEFAULT_TEMP_PREFIX) -> bool:
        return is_temporary_id(self.id, prefix)

    def with_time(self, time: Timeslot) -> Meeting:
        return self.model_copy(update={"time": time})

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Meeting:
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e), errors=e.errors(include_url=False)) from e


def validate_meeting(meeting: Any) -> Meeting:
    """Boundary check for values proposed through the mutator.

    ``model_copy(update=...)`` skips pydantic validation, so the timeslot
    invariant is re-checked here.
    """
    if not isinstance(meeting, Meeting):
        raise ValidationError(f"Expected Meeting, got {type(meeting).__name__}")
    time = meeting.time
    if not isinstance(time, Timeslot):
        raise ValidationError(f"Meeting {meeting.id!r} has no valid timeslot")
    if time.from_ >= time.to:
        raise ValidationError(
            f"Meeting {meeting.id!r} must start before it ends",
            meeting_id=meeting.id,
        )
    return meeting


def _first_error(e: PydanticValidationError) -> str:
    errors = e.errors(include_url=False)
    if not errors:
        return str(e)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = first.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


__all__ = [
    "DEFAULT_TEMP_PREFIX",
    "Meeting",
    "MeetingStatus",
    "Position",
    "Timeslot",
    "is_temporary_id",
    "new_temporary_id",
    "new_token",
    "validate_meeting",
]
