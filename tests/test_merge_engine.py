"""Tests for the pure merge step."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from lead_qualification.classifier import LeadTier
from lead_qualification.exceptions import LeadValidationError
from lead_qualification.merge_engine import merge_submission
from lead_qualification.models import HOST_OWNED_FIELDS, LeadRecord, LeadSource, PartialSubmission

NOW = datetime(2024, 3, 1, 12, 0, 0)


def _submit(**kwargs):
    kwargs.setdefault("sessionId", "S1")
    return PartialSubmission.model_validate(kwargs)


@pytest.fixture
def first_lead(contact_config):
    submission = _submit(questionNumber=1, answers={"name": "Ana", "email": "a@x.com"})
    return replace(merge_submission(None, submission, contact_config, now=NOW), id="lead-1")


# ── Submission model ──────────────────────────────────

class TestPartialSubmission:
    def test_accepts_camel_case(self):
        submission = _submit(conversationId="C1", questionNumber=3, markComplete=True)
        assert submission.session_id == "S1"
        assert submission.conversation_id == "C1"
        assert submission.question_number == 3
        assert submission.mark_complete is True

    def test_requires_an_identifier(self):
        with pytest.raises(ValidationError):
            PartialSubmission.model_validate({"answers": {"name": "Ana"}})

    def test_blank_identifiers_are_missing(self):
        with pytest.raises(ValidationError):
            PartialSubmission.model_validate({"sessionId": "  ", "conversationId": ""})

    def test_answers_cleaned(self):
        submission = _submit(answers={"name": " Ana ", "email": "", "phone": None, "age": 41})
        assert submission.all_answers() == {"name": "Ana", "age": "41"}

    def test_answers_override_custom_answers(self):
        submission = _submit(answers={"name": "Ana"}, customAnswers={"name": "X", "extra": "y"})
        assert submission.all_answers() == {"name": "Ana", "extra": "y"}

    def test_chat_only_session_key(self):
        submission = PartialSubmission.model_validate({"conversationId": "C9"})
        assert submission.effective_session_id == "chat-C9"


# ── Merge ─────────────────────────────────────────────

class TestMergeSubmission:
    def test_first_submission_requires_identity_field(self, contact_config):
        with pytest.raises(LeadValidationError) as exc:
            merge_submission(None, _submit(answers={"email": "a@x.com"}), contact_config, now=NOW)
        assert exc.value.field_id == "name"

    def test_blank_identity_field_rejected(self, contact_config):
        with pytest.raises(LeadValidationError):
            merge_submission(None, _submit(answers={"name": "   "}), contact_config, now=NOW)

    def test_later_submission_needs_no_identity_field(self, contact_config, first_lead):
        merged = merge_submission(first_lead, _submit(questionNumber=2, answers={"q1": "high"}), contact_config)
        assert merged.answers["name"] == "Ana"

    def test_new_lead_fields(self, first_lead):
        assert first_lead.session_id == "S1"
        assert first_lead.conversation_id is None
        assert first_lead.last_answered_step == 1
        assert first_lead.form_complete is False
        assert first_lead.classification is None
        assert first_lead.created_at == NOW
        assert first_lead.updated_at == NOW

    def test_no_regression_merge(self, contact_config, first_lead):
        later = _submit(questionNumber=2, answers={"q1": "high", "email": "  "})
        merged = merge_submission(first_lead, later, contact_config, now=NOW)
        assert merged.answers["email"] == "a@x.com"
        assert merged.answers["q1"] == "high"

    def test_later_value_wins(self, contact_config, first_lead):
        merged = merge_submission(first_lead, _submit(answers={"email": "b@x.com"}), contact_config)
        assert merged.answers["email"] == "b@x.com"

    def test_step_never_decreases(self, contact_config, first_lead):
        at_three = merge_submission(first_lead, _submit(questionNumber=3), contact_config)
        back_to_two = merge_submission(at_three, _submit(questionNumber=2), contact_config)
        assert back_to_two.last_answered_step == 3

    def test_step_clamped_to_schema(self, contact_config, first_lead):
        merged = merge_submission(first_lead, _submit(questionNumber=99), contact_config)
        assert merged.last_answered_step == contact_config.total_questions

    def test_reaching_last_step_completes(self, contact_config, first_lead):
        merged = merge_submission(
            first_lead,
            _submit(questionNumber=4, answers={"q1": "high", "q2": "mid", "q3": "low"}),
            contact_config,
            now=NOW,
        )
        assert merged.form_complete is True
        assert merged.completed_at == NOW
        assert merged.classification == LeadTier.WARM

    def test_completion_is_sticky(self, contact_config, first_lead):
        done = merge_submission(first_lead, _submit(markComplete=True), contact_config, now=NOW)
        later = NOW + timedelta(hours=2)
        again = merge_submission(done, _submit(questionNumber=1, markComplete=False), contact_config, now=later)
        assert again.form_complete is True
        assert again.completed_at == NOW

    def test_classification_held_while_incomplete(self, contact_config, first_lead):
        classified = replace(first_lead, classification=LeadTier.COLD)
        merged = merge_submission(classified, _submit(questionNumber=2, answers={"q1": "high"}), contact_config)
        assert merged.score_total == 10
        assert merged.classification == LeadTier.COLD

    def test_classification_recomputed_when_complete(self, contact_config, first_lead):
        done = merge_submission(first_lead, _submit(markComplete=True, answers={"q1": "mid"}), contact_config)
        assert done.classification == LeadTier.DISQUALIFIED
        upgraded = merge_submission(done, _submit(answers={"q1": "high", "q2": "high", "q3": "high"}), contact_config)
        assert upgraded.score_total == 30
        assert upgraded.classification == LeadTier.HOT

    def test_custom_answers_stored_unscored(self, contact_config, first_lead):
        merged = merge_submission(first_lead, _submit(customAnswers={"budgetNote": "flexible"}), contact_config)
        assert merged.custom_answers["budgetNote"] == "flexible"
        assert merged.answers["budgetNote"] == "flexible"
        assert "budgetNote" not in merged.score_breakdown
        assert merged.score_total == 0

    def test_conditional_answer_is_not_custom(self, contact_config, first_lead):
        merged = merge_submission(first_lead, _submit(answers={"q3": "other", "q3Other": "Bakery"}), contact_config)
        assert "q3Other" not in merged.custom_answers
        assert merged.score_breakdown["q3"] == 5

    def test_host_owned_fields_preserved(self, contact_config, first_lead):
        worked = replace(
            first_lead,
            status="contacted",
            notes="Called on Monday",
            notification_sent=True,
            external_contact_id="crm-42",
            external_sync_status="synced",
        )
        merged = merge_submission(worked, _submit(markComplete=True, answers={"q1": "high"}), contact_config)
        assert merged.status == "contacted"
        assert merged.notes == "Called on Monday"
        assert merged.notification_sent is True
        assert merged.external_contact_id == "crm-42"
        assert merged.external_sync_status == "synced"
        assert all(getattr(merged, name) == getattr(worked, name) for name in HOST_OWNED_FIELDS)
        assert merged.created_at == first_lead.created_at

    def test_input_record_not_modified(self, contact_config, first_lead):
        before = replace(first_lead, answers=dict(first_lead.answers))
        merge_submission(first_lead, _submit(answers={"q1": "high"}), contact_config)
        assert first_lead == before


# ── Identity and attribution ──────────────────────────

class TestMergeMetadata:
    def test_conversation_attached_once(self, contact_config, first_lead):
        attached = merge_submission(first_lead, _submit(conversationId="C1"), contact_config)
        assert attached.conversation_id == "C1"
        kept = merge_submission(attached, _submit(conversationId="C2"), contact_config)
        assert kept.conversation_id == "C1"
        assert kept.session_id == "S1"

    def test_chat_key_replaced_by_real_session(self, contact_config):
        chat = merge_submission(None, _submit(sessionId=None, conversationId="C1", answers={"name": "Bo"}), contact_config)
        assert chat.has_chat_session_key

        linked = merge_submission(chat, _submit(conversationId="C1"), contact_config)
        assert linked.session_id == "S1"
        assert not linked.has_chat_session_key

        kept = merge_submission(chat, _submit(conversationId="C1"), contact_config, adopt_session=False)
        assert kept.session_id == "chat-C1"

    def test_real_session_never_replaced(self, contact_config, first_lead):
        merged = merge_submission(first_lead, _submit(sessionId="S2", conversationId="C1"), contact_config)
        assert merged.session_id == "S1"

    def test_created_at_from_started_at(self, contact_config):
        submission = _submit(answers={"name": "Ana"}, startedAt="2024-02-29T23:30:00Z")
        lead = merge_submission(None, submission, contact_config, now=NOW)
        assert lead.created_at == datetime(2024, 2, 29, 23, 30, 0)
        assert lead.updated_at == NOW

    def test_bad_started_at_falls_back_to_now(self, contact_config):
        submission = _submit(answers={"name": "Ana"}, startedAt="yesterday")
        assert merge_submission(None, submission, contact_config, now=NOW).created_at == NOW

    def test_utm_first_touch(self, contact_config):
        first = merge_submission(
            None,
            _submit(answers={"name": "Ana"}, utmSource="google", originUrl="https://example.com/a"),
            contact_config,
        )
        later = merge_submission(
            first,
            _submit(utmSource="facebook", utmCampaign="spring"),
            contact_config,
        )
        assert later.utm_source == "google"
        assert later.utm_campaign == "spring"
        assert later.origin_url == "https://example.com/a"

    def test_elapsed_seconds_latest_wins(self, contact_config, first_lead):
        timed = merge_submission(first_lead, _submit(elapsedSeconds=40), contact_config)
        untimed = merge_submission(timed, _submit(), contact_config)
        assert untimed.elapsed_seconds == 40

    def test_source_from_creating_channel(self, contact_config):
        chat = PartialSubmission.model_validate(
            {"conversationId": "C7", "source": "chat", "answers": {"name": "Bo"}}
        )
        lead = merge_submission(None, chat, contact_config)
        assert lead.source == LeadSource.CHAT.value
        assert lead.session_id == "chat-C7"
        assert lead.conversation_id == "C7"

        form = merge_submission(lead, _submit(source="form"), contact_config)
        assert form.source == "chat"

    def test_record_to_dict(self, first_lead):
        data = first_lead.to_dict()
        assert data["session_id"] == "S1"
        assert data["classification"] is None
        assert data["created_at"] == NOW.isoformat()
        assert isinstance(LeadRecord(session_id="x").to_dict()["answers"], dict)
