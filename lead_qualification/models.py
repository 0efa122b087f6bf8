"""
Data structures exchanged at the engine boundary.

PartialSubmission is what the web form and the chat flow send;
LeadRecord is the merged, durable lead the engine hands back.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .classifier import LeadTier

logger = logging.getLogger(__name__)

DEFAULT_ABANDONMENT_WINDOW = timedelta(hours=24)

# Session key given to leads first seen in chat, until a real session id arrives.
CHAT_SESSION_PREFIX = "chat-"


class LeadStatus(str, Enum):
    """Workflow tag owned by the admin back office."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    DISCARDED = "discarded"


class LeadSource(str, Enum):
    FORM = "form"
    CHAT = "chat"


class CompletionState(str, Enum):
    """Read-time completion state; never stored."""
    COMPLETE = "complete"
    IN_PROGRESS = "in_progress"
    ABANDONED = "abandoned"


class ExternalSyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


# Fields the engine recomputes on every merge.
ENGINE_OWNED_FIELDS = (
    "answers",
    "custom_answers",
    "score_total",
    "score_breakdown",
    "classification",
    "last_answered_step",
    "form_complete",
    "completed_at",
    "origin_url",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "elapsed_seconds",
    "updated_at",
)

# Fields owned by the surrounding system; merges leave them alone.
HOST_OWNED_FIELDS = (
    "status",
    "notes",
    "notification_sent",
    "external_contact_id",
    "external_sync_status",
)


def chat_session_key(conversation_id: str) -> str:
    return f"{CHAT_SESSION_PREFIX}{conversation_id}"


def clean_answers(answers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Strip values and drop empty ones; blanks are never stored."""
    cleaned: Dict[str, str] = {}
    for key, value in (answers or {}).items():
        if value is None:
            continue
        text = str(value).strip()
        if text:
            cleaned[key] = text
    return cleaned


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into naive UTC, or None if unparseable."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Ignoring unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def completion_state(
    form_complete: bool,
    updated_at: Optional[datetime],
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
) -> CompletionState:
    """
    Derive complete / in progress / abandoned from two stored fields.

    An incomplete lead untouched for longer than the window is abandoned.
    """
    if form_complete:
        return CompletionState.COMPLETE
    if updated_at is None:
        return CompletionState.ABANDONED
    now = now or datetime.utcnow()
    if now - updated_at > window:
        return CompletionState.ABANDONED
    return CompletionState.IN_PROGRESS


class PartialSubmission(BaseModel):
    """
    One incremental submission from the web form or the chat flow.

    Either identifier may be missing, but not both.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = None
    conversation_id: Optional[str] = None
    question_number: int = 1
    answers: Dict[str, Optional[str]] = Field(default_factory=dict)
    custom_answers: Dict[str, Optional[str]] = Field(default_factory=dict)
    mark_complete: bool = False

    source: LeadSource = LeadSource.FORM
    started_at: Optional[str] = None
    elapsed_seconds: Optional[int] = Field(default=None, ge=0)
    origin_url: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None

    @field_validator("session_id", "conversation_id", mode="before")
    @classmethod
    def _blank_identifier_is_missing(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("answers", "custom_answers", mode="before")
    @classmethod
    def _stringify_answers(cls, value):
        if not isinstance(value, Mapping):
            return value
        return {
            str(k): (None if v is None else str(v))
            for k, v in value.items()
        }

    @model_validator(mode="after")
    def _require_identifier(self):
        if not self.session_id and not self.conversation_id:
            raise ValueError("sessionId or conversationId is required")
        return self

    def all_answers(self) -> Dict[str, str]:
        """Explicit answers layered over the custom-answers bag, cleaned."""
        merged = clean_answers(self.custom_answers)
        merged.update(clean_answers(self.answers))
        return merged

    @property
    def effective_session_id(self) -> str:
        """Session key for a lead created by this submission."""
        if self.session_id:
            return self.session_id
        return chat_session_key(self.conversation_id)


@dataclass
class LeadRecord:
    """The durable lead: one row per distinct intake."""

    session_id: str
    conversation_id: Optional[str] = None
    id: Optional[str] = None

    # Engine-owned
    answers: Dict[str, str] = field(default_factory=dict)
    custom_answers: Dict[str, str] = field(default_factory=dict)
    score_total: int = 0
    score_breakdown: Dict[str, int] = field(default_factory=dict)
    classification: Optional[LeadTier] = None
    last_answered_step: int = 0
    form_complete: bool = False
    completed_at: Optional[datetime] = None

    # Attribution
    source: str = LeadSource.FORM.value
    origin_url: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    elapsed_seconds: Optional[int] = None

    # Host-owned
    status: str = LeadStatus.NEW.value
    notes: str = ""
    notification_sent: bool = False
    external_contact_id: Optional[str] = None
    external_sync_status: str = ExternalSyncStatus.PENDING.value

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_chat_session_key(self) -> bool:
        """True while the session key is the placeholder derived from the conversation."""
        return bool(self.conversation_id) and self.session_id == chat_session_key(self.conversation_id)

    def completion_state(
        self,
        now: Optional[datetime] = None,
        window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
    ) -> CompletionState:
        return completion_state(self.form_complete, self.updated_at, now=now, window=window)

    def is_abandoned(
        self,
        now: Optional[datetime] = None,
        window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
    ) -> bool:
        return self.completion_state(now, window) == CompletionState.ABANDONED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "conversation_id": self.conversation_id,
            "answers": dict(self.answers),
            "custom_answers": dict(self.custom_answers),
            "score_total": self.score_total,
            "score_breakdown": dict(self.score_breakdown),
            "classification": self.classification.value if self.classification else None,
            "last_answered_step": self.last_answered_step,
            "form_complete": self.form_complete,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "source": self.source,
            "origin_url": self.origin_url,
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "utm_campaign": self.utm_campaign,
            "elapsed_seconds": self.elapsed_seconds,
            "status": self.status,
            "notes": self.notes,
            "notification_sent": self.notification_sent,
            "external_contact_id": self.external_contact_id,
            "external_sync_status": self.external_sync_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class LeadFilters:
    """Admin listing filters."""
    status: Optional[str] = None
    classification: Optional[LeadTier] = None
    completion: Optional[CompletionState] = None
    search: Optional[str] = None
    limit: int = 100
    offset: int = 0
