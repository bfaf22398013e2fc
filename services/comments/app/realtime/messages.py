"""Realtime wire messages.

Inbound frames look like ``{"event": "new_comment", "data": {...}, "ref": "7"}``
and are validated into one variant of a discriminated union before any
handler sees them. Outbound frames are either acks (``type: "ack"``, echoing
``ref``) or pushed events (``type: "event"``).
"""

import json
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from app.models.comment import COMMENT_MAX_LENGTH

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageValidationError(Exception):
    """Raised for frames that are not valid JSON or do not match any event schema."""

    def __init__(
        self,
        message: str,
        *,
        details: list[dict] | None = None,
        event: str | None = None,
        ref: str | None = None,
    ) -> None:
        self.details = details or []
        self.event = event
        self.ref = ref
        super().__init__(message)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class LessonRef(BaseModel):
    model_config = _CAMEL

    lesson_id: UUID


class NewCommentData(BaseModel):
    model_config = _CAMEL

    lesson_id: UUID
    content: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)


class NewReplyData(BaseModel):
    model_config = _CAMEL

    comment_id: UUID
    content: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)
    # Informational only; replies are routed to the parent comment's lesson
    lesson_id: UUID | None = None


class GetCommentsData(BaseModel):
    model_config = _CAMEL

    lesson_id: UUID
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------------------
# Inbound variants
# ---------------------------------------------------------------------------


class _Inbound(BaseModel):
    ref: str | None = None


class JoinLesson(_Inbound):
    event: Literal["join_lesson"]
    data: LessonRef


class LeaveLesson(_Inbound):
    event: Literal["leave_lesson"]
    data: LessonRef


class NewComment(_Inbound):
    event: Literal["new_comment"]
    data: NewCommentData


class NewReply(_Inbound):
    event: Literal["new_reply"]
    data: NewReplyData


class GetComments(_Inbound):
    event: Literal["get_comments"]
    data: GetCommentsData


InboundMessage = Annotated[
    Union[JoinLesson, LeaveLesson, NewComment, NewReply, GetComments],
    Field(discriminator="event"),
]

_inbound_adapter = TypeAdapter(InboundMessage)


def parse_message(raw: str | bytes | dict) -> InboundMessage:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MessageValidationError("Invalid JSON") from exc
    if not isinstance(raw, dict):
        raise MessageValidationError("Message must be a JSON object")

    event = raw.get("event") if isinstance(raw.get("event"), str) else None
    ref = raw.get("ref") if isinstance(raw.get("ref"), str) else None
    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as exc:
        details = exc.errors(include_url=False, include_context=False, include_input=False)
        raise MessageValidationError("Invalid message", details=details, event=event, ref=ref) from exc


# ---------------------------------------------------------------------------
# Results and outbound frames
# ---------------------------------------------------------------------------


def ok(**fields: Any) -> dict:
    return {"success": True, **fields}


def error(message: str, **extra: Any) -> dict:
    return {"error": message, **extra}


def ack_frame(event: str | None, ref: str | None, data: dict) -> dict:
    return {"type": "ack", "event": event, "ref": ref, "data": jsonable_encoder(data)}


def event_frame(event: str, data: dict) -> dict:
    return {"type": "event", "event": event, "data": jsonable_encoder(data)}
