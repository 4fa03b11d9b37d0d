# backend/schemas/challenge.py
"""
Challenge content shapes, request bodies and response models.

Challenge content is a tagged union on `kind`. Each challenge type accepts
only the kinds listed in CONTENT_KINDS; anything else is rejected before it
reaches the engines.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from models.challenge import ChallengeType
from schemas.base import CamelModel


# ── Content variants ──────────────────────────────────────────────────────────

class _Strict(CamelModel):
    class Config:
        extra = "forbid"


class ChallengeOption(_Strict):
    id: str
    text: str
    explanation: Optional[str] = None


class ArticleRef(_Strict):
    title: str
    source: str
    bias_rating: int = Field(ge=-3, le=3)
    excerpt: Optional[str] = None
    article_id: Optional[int] = None


class OptionsContent(_Strict):
    """Multiple choice (logic puzzles, data literacy, fallacy spotting)."""
    kind: Literal["options"]
    question: Optional[str] = None
    options: List[ChallengeOption] = Field(min_length=2)
    multi_select: bool = False
    data_visualization: Optional[str] = None


class ArticleSetContent(_Strict):
    """A set of articles to compare; bias swaps also list selectable indicators."""
    kind: Literal["articles"]
    articles: List[ArticleRef] = Field(min_length=1)
    instructions: Optional[str] = None
    indicators: Optional[List[str]] = None


class ScenarioContent(_Strict):
    """A scenario or claim, answered in free text or by picking an option."""
    kind: Literal["scenario"]
    scenario: str
    options: Optional[List[ChallengeOption]] = None


ChallengeContent = Annotated[
    Union[OptionsContent, ArticleSetContent, ScenarioContent],
    Field(discriminator="kind"),
]

_content_adapter = TypeAdapter(ChallengeContent)

CONTENT_KINDS = {
    ChallengeType.BIAS_SWAP: {"articles"},
    ChallengeType.LOGIC_PUZZLE: {"options"},
    ChallengeType.DATA_LITERACY: {"options"},
    ChallengeType.FALLACY_DETECTION: {"options", "articles"},
    ChallengeType.SYNTHESIS: {"articles"},
    ChallengeType.ETHICAL_DILEMMA: {"scenario"},
    ChallengeType.COUNTER_ARGUMENT: {"scenario", "articles"},
}


def parse_challenge_type(value: str) -> ChallengeType:
    try:
        return ChallengeType.parse(value)
    except ValueError:
        raise ValidationError(f"Unknown challenge type '{value}'.")


def parse_content(challenge_type: str, raw: Any) -> Union[OptionsContent, ArticleSetContent, ScenarioContent]:
    """Validate a stored/incoming content payload against its challenge type."""
    ctype = parse_challenge_type(challenge_type)
    try:
        content = _content_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid content for {ctype.value} challenge: {exc.errors()[0]['msg']}")
    if content.kind not in CONTENT_KINDS[ctype]:
        allowed = ", ".join(sorted(CONTENT_KINDS[ctype]))
        raise ValidationError(f"{ctype.value} challenges take '{allowed}' content, not '{content.kind}'.")
    return content


# ── Catalogue ─────────────────────────────────────────────────────────────────

class ChallengeCreate(CamelModel):
    type: str
    title: str
    prompt: str
    content: Dict[str, Any]
    correct_answer: Optional[Any] = None
    explanation: Optional[str] = None
    difficulty: int = Field(1, ge=1, le=4)
    estimated_time_minutes: int = Field(5, ge=1)
    xp_reward: int = Field(10, ge=0)
    allow_retries: bool = True


class ChallengeOut(CamelModel):
    """Client view of a challenge. correct_answer and explanation are never included."""
    id: int
    type: ChallengeType
    title: str
    prompt: str
    content: ChallengeContent
    difficulty: int
    estimated_time_minutes: int
    xp_reward: int

    @classmethod
    def from_challenge(cls, challenge) -> "ChallengeOut":
        return cls(
            id=challenge.id,
            type=parse_challenge_type(challenge.type),
            title=challenge.title,
            prompt=challenge.prompt,
            content=parse_content(challenge.type, challenge.content),
            difficulty=challenge.difficulty,
            estimated_time_minutes=challenge.estimated_time_minutes,
            xp_reward=challenge.xp_reward,
        )


class RecommendedChallenge(ChallengeOut):
    reasons: List[str] = []


class RecommendationsOut(CamelModel):
    recommendations: List[RecommendedChallenge]
    count: int


# ── Submission ────────────────────────────────────────────────────────────────

class SubmitRequest(CamelModel):
    # Shape is checked against the challenge by the submission pipeline
    answer: Any = None
    time_spent_seconds: int = 0


class BatchSubmitItem(SubmitRequest):
    challenge_id: int


class BatchSubmitRequest(CamelModel):
    # Items stay raw here; a malformed one is rejected on its own by parse_batch_item
    submissions: List[Any]


def parse_batch_item(raw: Any) -> BatchSubmitItem:
    if isinstance(raw, BatchSubmitItem):
        return raw
    try:
        return BatchSubmitItem.model_validate(raw)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'item'}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid submission: {problems}")


def claimed_challenge_id(raw: Any) -> Optional[int]:
    """The challenge id an item names, if it names a usable one."""
    if isinstance(raw, dict):
        value = raw.get("challengeId", raw.get("challenge_id"))
    else:
        value = getattr(raw, "challenge_id", None)
    return value if isinstance(value, int) and not isinstance(value, bool) else None


class StreakInfoOut(CamelModel):
    current: int
    longest: int
    is_active_today: bool
    streak_maintained: bool
    is_new_record: bool


class SubmissionResultOut(CamelModel):
    submission_id: int
    challenge_id: int
    is_correct: bool
    feedback: str
    xp_earned: int
    attempts: int
    streak_info: StreakInfoOut


class ItemError(CamelModel):
    code: str
    message: str


class BatchItemOut(CamelModel):
    index: int
    challenge_id: Optional[int] = None
    success: bool
    result: Optional[SubmissionResultOut] = None
    error: Optional[ItemError] = None


class BatchSubmitOut(CamelModel):
    results: List[BatchItemOut]
    succeeded: int
    failed: int


# ── Progress, stats, history ──────────────────────────────────────────────────

class ProgressOut(CamelModel):
    strengths: List[str]
    weaknesses: List[str]
    recommended_focus: List[str]
    progress_trend: Literal["improving", "stable", "declining"]


class PerformanceOut(CamelModel):
    completed: int = 0
    correct: int = 0
    xp: int = 0
    average_time_seconds: float = 0.0


class ChallengeStatsOut(CamelModel):
    total_completed: int
    total_correct: int
    accuracy: float
    total_xp_earned: int
    current_streak: int
    longest_streak: int
    type_performance: Dict[str, PerformanceOut]
    # Keyed by difficulty level "1".."4"
    difficulty_performance: Dict[str, PerformanceOut]


class HistoryItem(CamelModel):
    submission_id: int
    challenge_id: int
    challenge_title: str
    challenge_type: str
    is_correct: bool
    xp_earned: int
    time_spent_seconds: int
    attempts: int
    created_at: datetime


class HistoryOut(CamelModel):
    history: List[HistoryItem]
    page: int
    limit: int


class LeaderboardEntry(CamelModel):
    rank: int
    user_id: int
    username: str
    challenges_completed: int
    total_xp: int
    correct_answers: int
