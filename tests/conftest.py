"""Shared fixtures for lead qualification tests."""

from datetime import datetime

import pytest

from lead_qualification.merge_engine import ProgressiveMergeEngine
from lead_qualification.question_schema import (
    ConditionalField,
    FormConfig,
    Question,
    QuestionOption,
    QuestionType,
    ScoreThresholds,
)
from lead_qualification.repository import InMemoryLeadRepository


def _select(question_id, order, options, conditional=None):
    return Question(
        id=question_id,
        order=order,
        title=question_id,
        type=QuestionType.SELECT,
        options=[QuestionOption(value=v, label=v, points=p) for v, p in options],
        conditional_field=conditional,
    )


@pytest.fixture
def three_select_config():
    """Three select questions worth up to 10 points each; HOT >= 24."""
    return FormConfig(
        questions=[
            _select("q1", 1, [("high", 10), ("mid", 5), ("low", 0)]),
            _select("q2", 2, [("high", 10), ("mid", 5), ("low", 0)]),
            _select(
                "q3", 3,
                [("high", 10), ("Other", 5), ("low", 0)],
                conditional=ConditionalField(show_when="Other", id="q3Other", title="Please specify"),
            ),
        ],
        thresholds=ScoreThresholds(hot=24, warm=15, cold=8),
    )


@pytest.fixture
def contact_config(three_select_config):
    """Name first (identity field), then the three select questions."""
    name = Question(id="name", order=0, title="Your name", type=QuestionType.TEXT)
    return FormConfig(
        questions=[name] + list(three_select_config.questions),
        thresholds=three_select_config.thresholds,
    )


@pytest.fixture
def repository():
    return InMemoryLeadRepository()


class FixedClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 3, 1, 12, 0, 0)

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(repository, three_select_config, clock):
    return ProgressiveMergeEngine(repository, default_config=three_select_config, clock=clock)


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'leads.db'}"
