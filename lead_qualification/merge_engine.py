"""
Progressive Merge Engine.

Folds incremental submissions from the web form and the chat flow into a
single lead record, recomputing score, tier and completion on every merge.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from config.settings import Settings

from .classifier import classify
from .exceptions import DuplicateLeadError, LeadQualificationError, LeadValidationError
from .identity_resolver import LeadIdentityResolver
from .models import LeadRecord, PartialSubmission, parse_timestamp
from .question_schema import DEFAULT_FORM_CONFIG, FormConfig
from .repository import LeadRepository
from .scoring_model import evaluate

logger = logging.getLogger(__name__)


def _first_touch(current: Optional[str], incoming: Optional[str]) -> Optional[str]:
    if current:
        return current
    if incoming and incoming.strip():
        return incoming.strip()
    return None


def merge_submission(
    existing: Optional[LeadRecord],
    submission: PartialSubmission,
    config: FormConfig,
    now: Optional[datetime] = None,
    adopt_session: bool = True,
) -> LeadRecord:
    """
    Merge one submission into the existing lead (or a new one).

    Pure: the existing record is not modified. Fields the engine does not own
    (status, notes, notification flag, external sync) are carried over as-is.

    Args:
        existing: Resolved lead, or None for a first submission
        submission: Incoming partial answers
        config: Question schema and thresholds
        now: Merge time (defaults to utcnow)
        adopt_session: Replace a chat placeholder session key with the
            submission's real session id

    Returns:
        The merged LeadRecord, ready to persist

    Raises:
        LeadValidationError: first submission without the identity field
    """
    now = now or datetime.utcnow()
    incoming = submission.all_answers()

    identity_field = config.identity_field_id
    if existing is None and identity_field and identity_field not in incoming:
        raise LeadValidationError(identity_field, f"{identity_field} is required")

    # Right-biased merge; cleaned answers are never blank.
    answers = dict(existing.answers) if existing else {}
    answers.update(incoming)

    known = set(config.known_field_ids())
    custom_answers = {k: v for k, v in answers.items() if k not in known}

    total_questions = config.total_questions
    step = min(max(submission.question_number, 1), max(total_questions, 1))
    previous_step = existing.last_answered_step if existing else 0
    last_answered_step = max(previous_step, step)

    score = evaluate(answers, config.questions)

    was_complete = bool(existing and existing.form_complete)
    is_complete = (
        submission.mark_complete
        or last_answered_step >= total_questions
        or was_complete
    )

    if is_complete:
        classification = classify(score.total, config.thresholds)
    else:
        classification = existing.classification if existing else None

    completed_at = existing.completed_at if existing else None
    if is_complete and not was_complete:
        completed_at = now

    if existing is None:
        return LeadRecord(
            session_id=submission.effective_session_id,
            conversation_id=submission.conversation_id,
            answers=answers,
            custom_answers=custom_answers,
            score_total=score.total,
            score_breakdown=dict(score.breakdown),
            classification=classification,
            last_answered_step=last_answered_step,
            form_complete=is_complete,
            completed_at=completed_at,
            source=submission.source.value,
            origin_url=_first_touch(None, submission.origin_url),
            utm_source=_first_touch(None, submission.utm_source),
            utm_medium=_first_touch(None, submission.utm_medium),
            utm_campaign=_first_touch(None, submission.utm_campaign),
            elapsed_seconds=submission.elapsed_seconds,
            created_at=parse_timestamp(submission.started_at) or now,
            updated_at=now,
        )

    session_id = existing.session_id
    if adopt_session and submission.session_id and existing.has_chat_session_key:
        session_id = submission.session_id

    return replace(
        existing,
        session_id=session_id,
        conversation_id=existing.conversation_id or submission.conversation_id,
        answers=answers,
        custom_answers=custom_answers,
        score_total=score.total,
        score_breakdown=dict(score.breakdown),
        classification=classification,
        last_answered_step=last_answered_step,
        form_complete=is_complete,
        completed_at=completed_at,
        origin_url=_first_touch(existing.origin_url, submission.origin_url),
        utm_source=_first_touch(existing.utm_source, submission.utm_source),
        utm_medium=_first_touch(existing.utm_medium, submission.utm_medium),
        utm_campaign=_first_touch(existing.utm_campaign, submission.utm_campaign),
        elapsed_seconds=(
            submission.elapsed_seconds
            if submission.elapsed_seconds is not None
            else existing.elapsed_seconds
        ),
        updated_at=now,
    )


class ProgressiveMergeEngine:
    """
    Resolves, merges and persists submissions.

    Stateless apart from its collaborators: safe to share between concurrent
    requests. A create that loses a race against another first submission for
    the same identity is retried as an update of the winning row.
    """

    def __init__(
        self,
        repository: LeadRepository,
        default_config: Optional[FormConfig] = None,
        max_create_attempts: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.resolver = LeadIdentityResolver(repository)
        self.default_config = default_config or DEFAULT_FORM_CONFIG
        self.max_create_attempts = max(1, max_create_attempts)
        self._clock = clock or datetime.utcnow

    @classmethod
    def from_settings(
        cls,
        repository: LeadRepository,
        settings: Settings,
        default_config: Optional[FormConfig] = None,
    ) -> "ProgressiveMergeEngine":
        """Build an engine with the retry bound from settings."""
        return cls(
            repository,
            default_config=default_config,
            max_create_attempts=settings.lead_create_max_attempts,
        )

    async def submit(
        self,
        submission: PartialSubmission,
        config: Optional[FormConfig] = None,
    ) -> LeadRecord:
        """
        Apply a submission and return the stored lead.

        Args:
            submission: Partial or final answers from a producer
            config: Schema/thresholds for this call (defaults to the engine's)

        Returns:
            The complete, persisted LeadRecord

        Raises:
            LeadValidationError: first submission lacks the identity field
        """
        config = config or self.default_config
        adopt_session = True

        for attempt in range(1, self.max_create_attempts + 1):
            existing = await self.resolver.resolve(
                submission.session_id, submission.conversation_id
            )
            record = merge_submission(
                existing, submission, config, now=self._clock(), adopt_session=adopt_session
            )

            try:
                if existing is None:
                    saved = await self.repository.create(record)
                    logger.info(
                        f"Lead created: {saved.id}, session={saved.session_id}, "
                        f"source={saved.source}, score={saved.score_total}"
                    )
                else:
                    saved = await self.repository.update(record)
            except DuplicateLeadError as e:
                if existing is not None and e.key == "session_id":
                    # Session already belongs to another lead; keep the chat key
                    adopt_session = False
                logger.info(
                    f"Concurrent write on {e.key}={e.value} "
                    f"(attempt {attempt}/{self.max_create_attempts}), retrying"
                )
                continue

            if saved.form_complete and not (existing and existing.form_complete):
                tier = saved.classification.value if saved.classification else None
                logger.info(f"Lead completed: {saved.id}, score={saved.score_total}, tier={tier}")
            return saved

        raise LeadQualificationError(
            f"Could not store submission for session={submission.session_id} "
            f"conversation={submission.conversation_id} after {self.max_create_attempts} attempts"
        )
