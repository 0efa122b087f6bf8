"""
Question schema for the intake form.

The schema is plain data edited by administrators: each question has an id,
an order, an input type and, for select questions, an option/point table.
Scoring and classification consume it generically, so adding a question or
changing points never requires a code change.
"""

import json
import logging
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class QuestionType(str, Enum):
    """Input types. Only SELECT questions carry points."""
    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    SELECT = "select"


class _SchemaModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionOption(_SchemaModel):
    value: str
    label: str
    points: int = 0


class ConditionalField(_SchemaModel):
    """Dependent sub-question shown when the parent answer equals show_when."""
    show_when: str
    id: str
    title: str = ""
    placeholder: Optional[str] = None


class Question(_SchemaModel):
    id: str = Field(min_length=1)
    order: int
    title: str = ""
    type: QuestionType
    required: bool = True
    placeholder: Optional[str] = None
    options: List[QuestionOption] = Field(default_factory=list)
    conditional_field: Optional[ConditionalField] = None

    @property
    def is_scored(self) -> bool:
        return self.type == QuestionType.SELECT

    def trigger_option(self) -> Optional[QuestionOption]:
        """The option that opens the conditional sub-question, if any."""
        if not self.conditional_field:
            return None
        show_when = self.conditional_field.show_when
        for option in self.options:
            if option.value == show_when:
                return option
        for option in self.options:
            if option.label == show_when:
                return option
        return None


class ScoreThresholds(_SchemaModel):
    """Cut points for HOT / WARM / COLD. Expected strictly decreasing."""
    hot: int
    warm: int
    cold: int

    @property
    def is_well_formed(self) -> bool:
        return self.hot > self.warm > self.cold


class FormConfig(_SchemaModel):
    """A complete intake schema: questions plus score thresholds."""
    questions: List[Question] = Field(default_factory=list)
    thresholds: ScoreThresholds
    identity_field: Optional[str] = None

    def sorted_questions(self) -> List[Question]:
        """Questions in presentation order; ties broken by id."""
        return sorted(self.questions, key=lambda q: (q.order, q.id))

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def identity_field_id(self) -> Optional[str]:
        """Answer id that must be present before a lead can be created."""
        if self.identity_field:
            return self.identity_field
        ordered = self.sorted_questions()
        return ordered[0].id if ordered else None

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def known_field_ids(self) -> List[str]:
        """Question ids plus conditional sub-ids, in presentation order."""
        ids: List[str] = []
        for question in self.sorted_questions():
            ids.append(question.id)
            if question.conditional_field:
                ids.append(question.conditional_field.id)
        return ids

    def max_score(self) -> int:
        """Highest total reachable with this schema."""
        total = 0
        for question in self.questions:
            if question.is_scored and question.options:
                total += max(option.points for option in question.options)
        return total

    def find_problems(self) -> List[str]:
        """
        Describe configuration mistakes an operator should fix.

        Nothing here is fatal: scoring degrades to zero for unscoreable
        questions and classification interprets bad thresholds permissively.
        """
        problems: List[str] = []
        seen: Dict[str, int] = {}

        for question in self.questions:
            seen[question.id] = seen.get(question.id, 0) + 1

            if question.is_scored and not question.options:
                problems.append(f"Select question '{question.id}' has no options")

            for option in question.options:
                if option.points < 0:
                    problems.append(
                        f"Option '{option.value}' of '{question.id}' has negative points"
                    )

            if question.conditional_field:
                show_when = question.conditional_field.show_when
                matches = [o for o in question.options if o.value == show_when]
                if len(matches) > 1:
                    problems.append(
                        f"Question '{question.id}' has {len(matches)} options matching '{show_when}'"
                    )
                elif not matches and question.trigger_option() is None:
                    problems.append(
                        f"Conditional field of '{question.id}' triggers on unknown option '{show_when}'"
                    )

        for question_id, count in seen.items():
            if count > 1:
                problems.append(f"Question id '{question_id}' is used {count} times")

        if not self.thresholds.is_well_formed:
            t = self.thresholds
            problems.append(
                f"Thresholds are not strictly decreasing (hot={t.hot}, warm={t.warm}, cold={t.cold})"
            )

        return problems

    def log_problems(self) -> List[str]:
        problems = self.find_problems()
        for problem in problems:
            logger.warning(f"Form config problem: {problem}")
        return problems

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _options(*pairs) -> List[QuestionOption]:
    return [QuestionOption(value=value, label=value, points=points) for value, points in pairs]


# Shipped intake used when the host has not configured one yet.
DEFAULT_FORM_CONFIG = FormConfig(
    questions=[
        Question(
            id="name",
            order=1,
            title="What is your full name?",
            type=QuestionType.TEXT,
            placeholder="Your full name",
        ),
        Question(
            id="email",
            order=2,
            title="What is your email?",
            type=QuestionType.EMAIL,
            placeholder="you@example.com",
        ),
        Question(
            id="phone",
            order=3,
            title="What is your mobile/WhatsApp number?",
            type=QuestionType.TEL,
            placeholder="(555) 123-4567",
        ),
        Question(
            id="location",
            order=4,
            title="Where are you based today?",
            type=QuestionType.SELECT,
            options=_options(
                ("I already live in the US", 10),
                ("I live abroad but run a business in the US", 8),
                ("I am moving to the US soon", 7),
                ("Another country", 5),
            ),
            conditional_field=ConditionalField(
                show_when="I already live in the US",
                id="cityState",
                title="Which city/state?",
                placeholder="e.g. Orlando, FL",
            ),
        ),
        Question(
            id="businessType",
            order=5,
            title="What type of business do you run?",
            type=QuestionType.SELECT,
            options=_options(
                ("Cleaning Services", 10),
                ("Landscaping", 10),
                ("Construction/Remodeling", 10),
                ("Painting", 10),
                ("Handyman", 10),
            ) + [QuestionOption(value="Other", label="Other (please specify)", points=5)],
            conditional_field=ConditionalField(
                show_when="Other",
                id="businessTypeOther",
                title="Describe your type of business",
                placeholder="e.g. Consulting, Education, Technology",
            ),
        ),
        Question(
            id="businessAge",
            order=6,
            title="How long have you had this business?",
            type=QuestionType.SELECT,
            options=_options(
                ("Less than 6 months", 3),
                ("6 months to 1 year", 7),
                ("1 to 3 years", 10),
                ("More than 3 years", 8),
            ),
        ),
        Question(
            id="marketingSituation",
            order=7,
            title="How do you get new customers today?",
            type=QuestionType.SELECT,
            options=_options(
                ("Only through referrals", 8),
                ("I tried ads on my own without much success", 10),
                ("I hired someone/an agency and it did not work", 10),
                ("I have some results but want to scale", 9),
                ("I have not started any marketing strategy", 5),
            ),
        ),
        Question(
            id="adBudget",
            order=8,
            title="Consistent customer acquisition needs marketing investment. How does that fit your reality?",
            type=QuestionType.SELECT,
            options=_options(
                ("Yes, I can invest in marketing to grow faster", 10),
                ("I can start small and increase with results", 8),
                ("I cannot invest in this right now", 3),
            ),
        ),
        Question(
            id="mainChallenge",
            order=9,
            title="What is the biggest obstacle to growing your business today?",
            type=QuestionType.SELECT,
            options=_options(
                ("I do not have enough customers", 8),
                ("I spend on marketing but see no return", 10),
                ("I depend on referrals and have no control over my lead flow", 9),
                ("I do not know where to start with digital marketing", 7),
                ("I have customers but cannot charge what my service is worth", 8),
            ),
        ),
        Question(
            id="timelineExpectation",
            order=10,
            title="Clients usually see first leads in 2-4 weeks and consistent results in 60-90 days. Does that work for you?",
            type=QuestionType.SELECT,
            options=_options(
                ("Yes, I understand solid results take time", 10),
                ("I need something faster", 5),
                ("I am not sure yet", 3),
            ),
        ),
    ],
    thresholds=ScoreThresholds(hot=70, warm=50, cold=30),
)


def default_form_config(thresholds: Optional[dict] = None) -> FormConfig:
    """Copy of the shipped config, optionally with other thresholds."""
    config = DEFAULT_FORM_CONFIG.model_copy(deep=True)
    if thresholds:
        config.thresholds = ScoreThresholds.model_validate(thresholds)
    return config


def load_form_config(path: str) -> FormConfig:
    """Read a form config from a JSON file (camelCase keys, as the admin UI saves it)."""
    with open(path, encoding="utf-8") as f:
        return FormConfig.model_validate(json.load(f))
