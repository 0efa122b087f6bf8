"""Exceptions raised by the lead qualification engine."""

from typing import Optional


class LeadQualificationError(Exception):
    """Base class for engine errors."""


class LeadValidationError(LeadQualificationError):
    """A submission cannot be accepted as-is; the producer must resubmit."""

    def __init__(self, field_id: Optional[str], message: str):
        super().__init__(message)
        self.field_id = field_id
        self.message = message


class DuplicateLeadError(LeadQualificationError):
    """An identity key is already taken by another lead row."""

    def __init__(self, key: str, value: str):
        super().__init__(f"Lead with {key}={value!r} already exists")
        self.key = key
        self.value = value


class LeadNotFoundError(LeadQualificationError):
    def __init__(self, lead_id: str):
        super().__init__(f"Lead {lead_id} not found")
        self.lead_id = lead_id
