"""
Repository classes for the lead qualification data access layer.

FormLeadRepository implements the engine's LeadRepository protocol on top of
SQLAlchemy; FormConfigRepository stores the admin-edited question schema.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy import String, cast, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lead_qualification.classifier import LeadTier
from lead_qualification.exceptions import DuplicateLeadError, LeadNotFoundError
from lead_qualification.models import (
    DEFAULT_ABANDONMENT_WINDOW,
    ENGINE_OWNED_FIELDS,
    CompletionState,
    LeadFilters,
    LeadRecord,
    chat_session_key,
)
from lead_qualification.question_schema import FormConfig, default_form_config, load_form_config
from lead_qualification.repository import admin_changes

from .models import FormLead, FormSettings

logger = logging.getLogger(__name__)


def _to_record(row: FormLead) -> LeadRecord:
    return LeadRecord(
        id=row.id,
        session_id=row.session_id,
        conversation_id=row.conversation_id,
        answers=dict(row.answers or {}),
        custom_answers=dict(row.custom_answers or {}),
        score_total=row.score_total or 0,
        score_breakdown=dict(row.score_breakdown or {}),
        classification=LeadTier(row.classification) if row.classification else None,
        last_answered_step=row.last_answered_step or 0,
        form_complete=bool(row.form_complete),
        completed_at=row.completed_at,
        source=row.source,
        origin_url=row.origin_url,
        utm_source=row.utm_source,
        utm_medium=row.utm_medium,
        utm_campaign=row.utm_campaign,
        elapsed_seconds=row.elapsed_seconds,
        status=row.status,
        notes=row.notes or "",
        notification_sent=bool(row.notification_sent),
        external_contact_id=row.external_contact_id,
        external_sync_status=row.external_sync_status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _column_value(record: LeadRecord, name: str) -> Any:
    value = getattr(record, name)
    if isinstance(value, LeadTier):
        return value.value
    if isinstance(value, dict):
        return dict(value)
    return value


def _conflicting_key(exc: IntegrityError) -> str:
    return "conversation_id" if "conversation_id" in str(exc.orig) else "session_id"


class FormLeadRepository:
    """Data access for form leads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_row(self, lead_id: str) -> Optional[FormLead]:
        result = await self.session.execute(
            select(FormLead).where(FormLead.id == lead_id)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, lead_id: str) -> Optional[LeadRecord]:
        row = await self._get_row(lead_id)
        return _to_record(row) if row else None

    async def get_by_session_id(self, session_id: str) -> Optional[LeadRecord]:
        result = await self.session.execute(
            select(FormLead).where(FormLead.session_id == session_id)
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def get_by_conversation_id(self, conversation_id: str) -> Optional[LeadRecord]:
        result = await self.session.execute(
            select(FormLead).where(FormLead.conversation_id == conversation_id)
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def create(self, record: LeadRecord) -> LeadRecord:
        """
        Insert a lead.

        Must be the first write of the unit of work: a key clash rolls the
        session back so the caller can re-read the row that won.
        """
        now = datetime.utcnow()
        row = FormLead(
            session_id=record.session_id,
            conversation_id=record.conversation_id,
            source=record.source,
            status=record.status,
            notes=record.notes,
            notification_sent=record.notification_sent,
            external_contact_id=record.external_contact_id,
            external_sync_status=record.external_sync_status,
            created_at=record.created_at or now,
        )
        if record.id:
            row.id = record.id
        for name in ENGINE_OWNED_FIELDS:
            setattr(row, name, _column_value(record, name))
        row.updated_at = record.updated_at or now

        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            key = _conflicting_key(e)
            raise DuplicateLeadError(key, getattr(record, key)) from e
        return _to_record(row)

    async def update(self, record: LeadRecord) -> LeadRecord:
        row = await self._get_row(record.id) if record.id else None
        if row is None:
            raise LeadNotFoundError(str(record.id))

        placeholder = row.conversation_id and row.session_id == chat_session_key(row.conversation_id)
        if placeholder and record.session_id != row.session_id:
            row.session_id = record.session_id
        if record.conversation_id and not row.conversation_id:
            row.conversation_id = record.conversation_id
        for name in ENGINE_OWNED_FIELDS:
            setattr(row, name, _column_value(record, name))
        row.updated_at = record.updated_at or datetime.utcnow()

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            key = _conflicting_key(e)
            raise DuplicateLeadError(key, getattr(record, key)) from e
        return _to_record(row)

    async def list_leads(
        self,
        filters: Optional[LeadFilters] = None,
        now: Optional[datetime] = None,
        window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
    ) -> List[LeadRecord]:
        filters = filters or LeadFilters()
        q = select(FormLead)

        if filters.status:
            q = q.where(FormLead.status == filters.status)
        if filters.classification:
            q = q.where(FormLead.classification == LeadTier(filters.classification).value)

        if filters.completion:
            cutoff = (now or datetime.utcnow()) - window
            state = CompletionState(filters.completion)
            if state == CompletionState.COMPLETE:
                q = q.where(FormLead.form_complete.is_(True))
            elif state == CompletionState.IN_PROGRESS:
                q = q.where(FormLead.form_complete.is_(False), FormLead.updated_at >= cutoff)
            else:
                q = q.where(
                    FormLead.form_complete.is_(False),
                    or_(FormLead.updated_at < cutoff, FormLead.updated_at.is_(None)),
                )

        if filters.search:
            term = f"%{filters.search}%"
            q = q.where(or_(
                cast(FormLead.answers, String).ilike(term),
                FormLead.session_id.ilike(term),
                FormLead.conversation_id.ilike(term),
            ))

        q = q.order_by(FormLead.created_at.desc()).offset(filters.offset).limit(filters.limit)
        result = await self.session.execute(q)
        return [_to_record(row) for row in result.scalars().all()]

    async def update_admin_fields(self, lead_id: str, **changes: Any) -> LeadRecord:
        values = admin_changes(**changes)
        row = await self._get_row(lead_id)
        if row is None:
            raise LeadNotFoundError(lead_id)
        for name, value in values.items():
            setattr(row, name, value)
        await self.session.flush()
        return _to_record(row)

    async def delete(self, lead_id: str) -> bool:
        row = await self._get_row(lead_id)
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True


class FormConfigRepository:
    """Data access for the stored form config."""

    KEY = "form_config"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self) -> Optional[FormConfig]:
        row = await self.session.get(FormSettings, self.KEY)
        if row is None:
            return None
        return FormConfig.model_validate(row.config_json)

    async def get_active(self, settings=None) -> FormConfig:
        """Stored config, else the file at FORM_CONFIG_PATH, else the shipped default."""
        config = await self.get()
        if config is None and settings and settings.form_config_path:
            config = load_form_config(settings.form_config_path)
            logger.info(f"Using form config from {settings.form_config_path}")
        if config is None:
            thresholds = settings.thresholds if settings else None
            config = default_form_config(thresholds)
        config.log_problems()
        return config

    async def save(self, config: FormConfig) -> FormConfig:
        data = config.to_dict()
        row = await self.session.get(FormSettings, self.KEY)
        if row is None:
            self.session.add(FormSettings(key=self.KEY, config_json=data))
        else:
            row.config_json = data
            row.updated_at = datetime.utcnow()
        await self.session.flush()
        logger.info(
            f"Form config saved: {config.total_questions} questions, "
            f"max score {config.max_score()}"
        )
        return config
