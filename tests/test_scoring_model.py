"""Tests for the scoring evaluator and the tier classifier."""

import pytest

from lead_qualification.classifier import LeadTier, classify, effective_thresholds
from lead_qualification.question_schema import (
    DEFAULT_FORM_CONFIG,
    FormConfig,
    ScoreThresholds,
)
from lead_qualification.scoring_model import evaluate, score_question


# ── Evaluator ─────────────────────────────────────────

class TestEvaluate:
    def test_sums_matched_options(self, three_select_config):
        score = evaluate({"q1": "high", "q2": "high", "q3": "Other"}, three_select_config.questions)
        assert score.total == 25
        assert score.breakdown == {"q1": 10, "q2": 10, "q3": 5}

    def test_unanswered_and_unmatched_score_zero(self, three_select_config):
        score = evaluate({"q1": "no such option"}, three_select_config.questions)
        assert score.total == 0
        assert score.breakdown == {"q1": 0, "q2": 0, "q3": 0}

    def test_label_match(self):
        question = DEFAULT_FORM_CONFIG.get_question("businessType")
        assert score_question(question, {"businessType": "Other (please specify)"}) == 5
        assert score_question(question, {"businessType": "Other"}) == 5

    def test_value_takes_precedence_over_label(self, three_select_config):
        data = three_select_config.to_dict()
        data["questions"][0]["options"] = [
            {"value": "a", "label": "b", "points": 1},
            {"value": "b", "label": "a", "points": 7},
        ]
        config = FormConfig.model_validate(data)
        assert evaluate({"q1": "b"}, config.questions).breakdown["q1"] == 7

    def test_text_questions_never_score(self):
        answers = {"name": "Ana", "email": "ana@example.com", "phone": "555"}
        assert evaluate(answers, DEFAULT_FORM_CONFIG.questions).total == 0

    def test_whitespace_answer_is_absent(self, three_select_config):
        assert evaluate({"q1": "   "}, three_select_config.questions).total == 0

    def test_answer_is_trimmed(self, three_select_config):
        assert evaluate({"q1": "  high "}, three_select_config.questions).total == 10

    def test_extra_answers_ignored(self, three_select_config):
        score = evaluate({"q1": "high", "favouriteColour": "blue"}, three_select_config.questions)
        assert score.total == 10
        assert "favouriteColour" not in score.breakdown

    def test_deterministic(self, three_select_config):
        answers = {"q1": "mid", "q2": "high", "q3": "other", "q3Other": "Bakery"}
        first = evaluate(answers, three_select_config.questions)
        second = evaluate(dict(answers), three_select_config.questions)
        assert first == second

    def test_question_order_irrelevant(self, three_select_config):
        answers = {"q1": "mid", "q2": "high", "q3": "low"}
        forward = evaluate(answers, three_select_config.questions)
        backward = evaluate(answers, list(reversed(three_select_config.questions)))
        assert forward.total == backward.total

    def test_full_default_config(self):
        answers = {
            "location": "I already live in the US",
            "businessType": "Cleaning Services",
            "businessAge": "1 to 3 years",
            "marketingSituation": "I tried ads on my own without much success",
            "adBudget": "Yes, I can invest in marketing to grow faster",
            "mainChallenge": "I spend on marketing but see no return",
            "timelineExpectation": "Yes, I understand solid results take time",
        }
        assert evaluate(answers, DEFAULT_FORM_CONFIG.questions).total == 70

    def test_select_without_options_scores_zero(self):
        config = FormConfig.model_validate({
            "questions": [{"id": "q", "order": 1, "type": "select"}],
            "thresholds": {"hot": 3, "warm": 2, "cold": 1},
        })
        assert evaluate({"q": "anything"}, config.questions).total == 0

    def test_negative_points_clamped(self):
        config = FormConfig.model_validate({
            "questions": [{
                "id": "q", "order": 1, "type": "select",
                "options": [{"value": "a", "label": "a", "points": -4}],
            }],
            "thresholds": {"hot": 3, "warm": 2, "cold": 1},
        })
        assert evaluate({"q": "a"}, config.questions).total == 0


# ── Conditional floor ─────────────────────────────────

class TestConditionalFloor:
    def test_label_variant_with_detail_gets_floor(self, three_select_config):
        score = evaluate({"q3": "other", "q3Other": "Bakery"}, three_select_config.questions)
        assert score.breakdown["q3"] == 5

    def test_label_variant_without_detail_scores_zero(self, three_select_config):
        score = evaluate({"q3": "other"}, three_select_config.questions)
        assert score.breakdown["q3"] == 0

    def test_blank_detail_does_not_trigger(self, three_select_config):
        score = evaluate({"q3": "OTHER ", "q3Other": "  "}, three_select_config.questions)
        assert score.breakdown["q3"] == 0

    def test_detail_ignored_for_other_answers(self, three_select_config):
        score = evaluate({"q3": "low", "q3Other": "Bakery"}, three_select_config.questions)
        assert score.breakdown["q3"] == 0

    def test_default_config_other_business(self):
        answers = {"businessType": "other", "businessTypeOther": "Pool cleaning"}
        score = evaluate(answers, DEFAULT_FORM_CONFIG.questions)
        assert score.breakdown["businessType"] == 5


# ── Classifier ────────────────────────────────────────

class TestClassify:
    @pytest.mark.parametrize("total, tier", [
        (70, LeadTier.HOT),
        (69, LeadTier.WARM),
        (50, LeadTier.WARM),
        (49, LeadTier.COLD),
        (30, LeadTier.COLD),
        (29, LeadTier.DISQUALIFIED),
        (0, LeadTier.DISQUALIFIED),
    ])
    def test_threshold_boundaries(self, total, tier):
        thresholds = ScoreThresholds(hot=70, warm=50, cold=30)
        assert classify(total, thresholds) == tier

    def test_small_schema_thresholds(self, three_select_config):
        assert classify(25, three_select_config.thresholds) == LeadTier.HOT
        assert classify(15, three_select_config.thresholds) == LeadTier.WARM
        assert classify(7, three_select_config.thresholds) == LeadTier.DISQUALIFIED

    def test_malformed_thresholds_clamped(self):
        thresholds = ScoreThresholds(hot=40, warm=60, cold=50)
        t = effective_thresholds(thresholds)
        assert (t.hot, t.warm, t.cold) == (40, 40, 40)
        assert classify(45, thresholds) == LeadTier.HOT
        assert classify(39, thresholds) == LeadTier.DISQUALIFIED

    def test_equal_thresholds(self):
        thresholds = ScoreThresholds(hot=10, warm=10, cold=5)
        assert classify(10, thresholds) == LeadTier.HOT
        assert classify(9, thresholds) == LeadTier.COLD

    def test_tier_values(self):
        assert LeadTier.HOT.value == "HOT"
        assert LeadTier("DISQUALIFIED") is LeadTier.DISQUALIFIED
