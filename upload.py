"""
Bulk event upload.

Admins paste one JSON document per event:

    member: {"type": "member", "date": "YYYY-MM-DD",
             "candidates": [{"name": ..., "major": ..., "grad_year": ..., "gpa": ...,
                             "classification": ..., "image_url": ..., "resume_url": ...}]}

    exec:   {"type": "exec", "date": "YYYY-MM-DD",
             "positions": [{"name": "President",
                            "candidates": [{"name": ..., "classification": ...,
                                            "image_url": ..., "resume_url": ...}]}]}

The display name is entered separately and must not be blank. order_index runs
across the flattened candidate list in upload order.
"""

import datetime
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from exceptions import UploadError
from models import EventTypeEnum


def _optional_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class _CandidateIn(BaseModel):
    name: str
    classification: Optional[str] = None
    image_url: Optional[str] = None
    resume_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Candidate name cannot be empty")
        return v.strip()

    @field_validator("classification", "image_url", "resume_url", mode="before")
    @classmethod
    def validate_optional_strings(cls, v: Any) -> Optional[str]:
        return _optional_text(v)


class MemberCandidateIn(_CandidateIn):
    major: Optional[str] = None
    grad_year: Optional[str] = None
    gpa: Optional[str] = None

    @field_validator("major", "grad_year", "gpa", mode="before")
    @classmethod
    def validate_profile_strings(cls, v: Any) -> Optional[str]:
        return _optional_text(v)


class PositionIn(BaseModel):
    name: str
    candidates: List[_CandidateIn]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Position name cannot be empty")
        return v.strip()


class _EventIn(BaseModel):
    type: str = Field(validation_alias=AliasChoices("type", "event_type"))
    date: datetime.date

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> str:
        # older uploads said "new_member"
        return "member" if v == "new_member" else v


class MemberEventIn(_EventIn):
    type: Literal["member"] = Field(validation_alias=AliasChoices("type", "event_type"))
    candidates: List[MemberCandidateIn]


class ExecEventIn(_EventIn):
    type: Literal["exec"] = Field(validation_alias=AliasChoices("type", "event_type"))
    positions: List[PositionIn]


@dataclass
class UploadPlan:
    type: EventTypeEnum
    name: str
    date: datetime.date
    candidates: List[Dict[str, Any]] = field(default_factory=list)

    def preview(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "date": self.date.isoformat(),
            "candidates": self.candidates,
        }


def _format_errors(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def parse_upload(text: str, event_name: str) -> UploadPlan:
    """Validate pasted JSON and flatten it into candidate rows ready for the store."""
    name = (event_name or "").strip()
    if not name:
        raise UploadError("Enter an event name before creating the event.")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise UploadError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise UploadError("Invalid upload: expected a JSON object.")

    event_type = data.get("type", data.get("event_type"))
    if event_type == "new_member":
        event_type = "member"
    try:
        if event_type == "member":
            parsed = MemberEventIn.model_validate(data)
            rows = [c.model_dump() for c in parsed.candidates]
        elif event_type == "exec":
            parsed = ExecEventIn.model_validate(data)
            rows = [dict(c.model_dump(), position=p.name)
                    for p in parsed.positions for c in p.candidates]
        else:
            raise UploadError(f'Invalid upload: type must be "member" or "exec", got {event_type!r}.')
    except ValidationError as e:
        raise UploadError(f"Invalid upload: {_format_errors(e)}") from e

    if not rows:
        raise UploadError("Invalid upload: no candidates found.")
    for order_index, row in enumerate(rows):
        row["order_index"] = order_index

    return UploadPlan(type=EventTypeEnum(event_type), name=name, date=parsed.date, candidates=rows)
