"""
Lead Qualification & Progressive Capture Engine.

This package turns incremental intake submissions into qualified leads:
- Question schema as data (options, points, conditional sub-fields)
- Scoring evaluator and HOT/WARM/COLD/DISQUALIFIED classifier
- Cross-channel identity resolution (web form session, chat conversation)
- Progressive merge engine with race-safe lead creation
- Completion / abandonment tracking and lead summaries
"""

from .exceptions import (
    LeadQualificationError,
    LeadValidationError,
    DuplicateLeadError,
    LeadNotFoundError,
)
from .question_schema import (
    QuestionType,
    QuestionOption,
    ConditionalField,
    Question,
    ScoreThresholds,
    FormConfig,
    DEFAULT_FORM_CONFIG,
    default_form_config,
    load_form_config,
)
from .scoring_model import LeadScore, evaluate
from .classifier import LeadTier, classify
from .models import (
    LeadStatus,
    LeadSource,
    CompletionState,
    PartialSubmission,
    LeadRecord,
    LeadFilters,
)
from .repository import LeadRepository, InMemoryLeadRepository
from .identity_resolver import LeadIdentityResolver
from .merge_engine import ProgressiveMergeEngine, merge_submission
from .reporting import LeadSummary, summarize_leads

__all__ = [
    "LeadQualificationError",
    "LeadValidationError",
    "DuplicateLeadError",
    "LeadNotFoundError",
    "QuestionType",
    "QuestionOption",
    "ConditionalField",
    "Question",
    "ScoreThresholds",
    "FormConfig",
    "DEFAULT_FORM_CONFIG",
    "default_form_config",
    "load_form_config",
    "LeadScore",
    "evaluate",
    "LeadTier",
    "classify",
    "LeadStatus",
    "LeadSource",
    "CompletionState",
    "PartialSubmission",
    "LeadRecord",
    "LeadFilters",
    "LeadRepository",
    "InMemoryLeadRepository",
    "LeadIdentityResolver",
    "ProgressiveMergeEngine",
    "merge_submission",
    "LeadSummary",
    "summarize_leads",
]
