"""
SQLAlchemy ORM models for the lead qualification engine.

One row per lead in form_leads; the admin-edited form config in form_settings.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class FormLead(Base):
    __tablename__ = "form_leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    # Identity keys; uniqueness is what makes concurrent first writes safe
    session_id = Column(String(128), nullable=False, unique=True)
    conversation_id = Column(String(128), nullable=True, unique=True)

    answers = Column(JSON, default=dict)
    custom_answers = Column(JSON, default=dict)
    score_total = Column(Integer, default=0)
    score_breakdown = Column(JSON, default=dict)
    classification = Column(String(16), nullable=True)  # HOT, WARM, COLD, DISQUALIFIED
    last_answered_step = Column(Integer, default=0)
    form_complete = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)

    source = Column(String(20), default="form")  # form, chat
    origin_url = Column(Text, nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    elapsed_seconds = Column(Integer, nullable=True)

    status = Column(String(20), default="new")  # new, contacted, qualified, converted, discarded
    notes = Column(Text, default="")
    notification_sent = Column(Boolean, default=False)
    external_contact_id = Column(String(64), nullable=True)
    external_sync_status = Column(String(20), default="pending")  # pending, synced, failed

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_form_lead_classification", "classification"),
        Index("ix_form_lead_status", "status"),
        Index("ix_form_lead_completion", "form_complete", "updated_at"),
    )


class FormSettings(Base):
    __tablename__ = "form_settings"

    key = Column(String(64), primary_key=True)
    config_json = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
