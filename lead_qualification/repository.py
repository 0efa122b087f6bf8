"""
LeadRepository protocol and an in-memory implementation.

The engine only talks to the protocol, so the same merge logic runs on top
of the SQL repository in `database.repositories` or on the dict-backed store
below (tests, hosts without a database).
"""

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .exceptions import DuplicateLeadError, LeadNotFoundError
from .models import (
    DEFAULT_ABANDONMENT_WINDOW,
    ENGINE_OWNED_FIELDS,
    ExternalSyncStatus,
    LeadFilters,
    LeadRecord,
    LeadStatus,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class LeadRepository(Protocol):
    """Protocol for lead persistence."""

    async def get_by_id(self, lead_id: str) -> Optional[LeadRecord]:
        ...

    async def get_by_session_id(self, session_id: str) -> Optional[LeadRecord]:
        ...

    async def get_by_conversation_id(self, conversation_id: str) -> Optional[LeadRecord]:
        ...

    async def create(self, record: LeadRecord) -> LeadRecord:
        """Insert a new lead. Raises DuplicateLeadError if a key is taken."""
        ...

    async def update(self, record: LeadRecord) -> LeadRecord:
        """
        Write engine-owned fields of an existing lead.

        Also attaches a missing conversation id and swaps a chat placeholder
        session key for a real one. Raises DuplicateLeadError if either key
        belongs to another lead.
        """
        ...

    async def list_leads(
        self,
        filters: Optional[LeadFilters] = None,
        now: Optional[datetime] = None,
        window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
    ) -> List[LeadRecord]:
        ...

    async def update_admin_fields(self, lead_id: str, **changes: Any) -> LeadRecord:
        ...

    async def delete(self, lead_id: str) -> bool:
        ...


def admin_changes(
    status: Optional[str] = None,
    notes: Optional[str] = None,
    notification_sent: Optional[bool] = None,
    external_contact_id: Optional[str] = None,
    external_sync_status: Optional[str] = None,
) -> Dict[str, Any]:
    """Validate a host-side edit and keep only the fields actually given."""
    changes: Dict[str, Any] = {}
    if status is not None:
        changes["status"] = LeadStatus(status).value
    if notes is not None:
        changes["notes"] = notes
    if notification_sent is not None:
        changes["notification_sent"] = bool(notification_sent)
    if external_contact_id is not None:
        changes["external_contact_id"] = external_contact_id
    if external_sync_status is not None:
        changes["external_sync_status"] = ExternalSyncStatus(external_sync_status).value
    return changes


def matches_filters(
    record: LeadRecord,
    filters: LeadFilters,
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
) -> bool:
    if filters.status and record.status != filters.status:
        return False
    if filters.classification and record.classification != filters.classification:
        return False
    if filters.completion and record.completion_state(now, window) != filters.completion:
        return False
    if filters.search:
        term = filters.search.casefold()
        haystack = [record.session_id, record.conversation_id or ""]
        haystack.extend(record.answers.values())
        if not any(term in value.casefold() for value in haystack):
            return False
    return True


class InMemoryLeadRepository:
    """Dict-backed lead store with unique session and conversation keys."""

    def __init__(self):
        self._leads: Dict[str, LeadRecord] = {}
        self._by_session: Dict[str, str] = {}
        self._by_conversation: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._leads)

    async def get_by_id(self, lead_id: str) -> Optional[LeadRecord]:
        record = self._leads.get(lead_id)
        return copy.deepcopy(record) if record else None

    async def get_by_session_id(self, session_id: str) -> Optional[LeadRecord]:
        lead_id = self._by_session.get(session_id)
        return await self.get_by_id(lead_id) if lead_id else None

    async def get_by_conversation_id(self, conversation_id: str) -> Optional[LeadRecord]:
        lead_id = self._by_conversation.get(conversation_id)
        return await self.get_by_id(lead_id) if lead_id else None

    async def create(self, record: LeadRecord) -> LeadRecord:
        async with self._lock:
            if record.session_id in self._by_session:
                raise DuplicateLeadError("session_id", record.session_id)
            if record.conversation_id and record.conversation_id in self._by_conversation:
                raise DuplicateLeadError("conversation_id", record.conversation_id)

            stored = copy.deepcopy(record)
            stored.id = stored.id or str(uuid.uuid4())
            now = datetime.utcnow()
            stored.created_at = stored.created_at or now
            stored.updated_at = stored.updated_at or now

            self._leads[stored.id] = stored
            self._by_session[stored.session_id] = stored.id
            if stored.conversation_id:
                self._by_conversation[stored.conversation_id] = stored.id
            return copy.deepcopy(stored)

    async def update(self, record: LeadRecord) -> LeadRecord:
        async with self._lock:
            stored = self._leads.get(record.id) if record.id else None
            if stored is None:
                raise LeadNotFoundError(str(record.id))

            if record.session_id != stored.session_id and stored.has_chat_session_key:
                owner = self._by_session.get(record.session_id)
                if owner and owner != stored.id:
                    raise DuplicateLeadError("session_id", record.session_id)
                self._by_session.pop(stored.session_id, None)
                stored.session_id = record.session_id
                self._by_session[record.session_id] = stored.id

            if record.conversation_id and not stored.conversation_id:
                owner = self._by_conversation.get(record.conversation_id)
                if owner and owner != stored.id:
                    raise DuplicateLeadError("conversation_id", record.conversation_id)
                stored.conversation_id = record.conversation_id
                self._by_conversation[record.conversation_id] = stored.id

            for name in ENGINE_OWNED_FIELDS:
                setattr(stored, name, copy.deepcopy(getattr(record, name)))
            stored.updated_at = record.updated_at or datetime.utcnow()
            return copy.deepcopy(stored)

    async def list_leads(
        self,
        filters: Optional[LeadFilters] = None,
        now: Optional[datetime] = None,
        window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
    ) -> List[LeadRecord]:
        filters = filters or LeadFilters()
        found = [
            r for r in self._leads.values()
            if matches_filters(r, filters, now=now, window=window)
        ]
        found.sort(key=lambda r: r.created_at or datetime.min, reverse=True)
        page = found[filters.offset:filters.offset + filters.limit]
        return [copy.deepcopy(r) for r in page]

    async def update_admin_fields(self, lead_id: str, **changes: Any) -> LeadRecord:
        values = admin_changes(**changes)
        async with self._lock:
            stored = self._leads.get(lead_id)
            if stored is None:
                raise LeadNotFoundError(lead_id)
            for name, value in values.items():
                setattr(stored, name, value)
            return copy.deepcopy(stored)

    async def delete(self, lead_id: str) -> bool:
        async with self._lock:
            stored = self._leads.pop(lead_id, None)
            if stored is None:
                return False
            self._by_session.pop(stored.session_id, None)
            if stored.conversation_id:
                self._by_conversation.pop(stored.conversation_id, None)
            return True
