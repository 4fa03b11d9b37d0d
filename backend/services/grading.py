# backend/services/grading.py
"""
Answer checking, XP and feedback for challenge submissions.
"""
import math
import re
from typing import Any, List, Union

from core.errors import ValidationError
from models.challenge import Challenge, ChallengeType
from schemas.challenge import ArticleSetContent, OptionsContent, ScenarioContent, parse_content

Answer = Union[str, List[str]]

PARTIAL_CREDIT = 0.3             # share of xp_reward for a wrong answer
STREAK_STEP_DAYS = 5
STREAK_BONUS_PER_STEP = 0.10     # +10% per full 5-day streak …
STREAK_BONUS_CAP = 0.50          # … up to +50%
FAST_FACTOR = 1.2                # under half the estimated time
SLOW_FACTOR = 0.9                # over double the estimated time
MIN_FREE_TEXT_WORDS = 50

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: Any) -> str:
    return _WHITESPACE.sub(" ", str(value)).strip().casefold()


def _answer_mode(challenge: Challenge, content) -> str:
    """'choice' (one option id), 'multi' (list of ids/indicators) or 'text'."""
    ctype = ChallengeType.parse(challenge.type)
    if isinstance(content, OptionsContent):
        if content.multi_select or isinstance(challenge.correct_answer, list):
            return "multi"
        return "choice"
    if isinstance(content, ArticleSetContent):
        return "multi" if ctype == ChallengeType.BIAS_SWAP else "text"
    if isinstance(content, ScenarioContent) and content.options:
        return "choice"
    return "text"


def _allowed_choices(content) -> List[str]:
    if isinstance(content, ArticleSetContent):
        return [normalize_text(i) for i in content.indicators or []]
    options = getattr(content, "options", None) or []
    return [normalize_text(o.id) for o in options]


def validate_answer(challenge: Challenge, answer: Any) -> Answer:
    """Check the answer's shape against the challenge and return it cleaned up."""
    content = parse_content(challenge.type, challenge.content)
    mode = _answer_mode(challenge, content)
    allowed = _allowed_choices(content)

    if mode == "multi":
        if not isinstance(answer, list) or not answer or not all(isinstance(a, str) for a in answer):
            raise ValidationError("This challenge expects a non-empty list of selections.")
        unknown = [a for a in answer if allowed and normalize_text(a) not in allowed]
        if unknown:
            raise ValidationError(f"Unknown selection(s): {', '.join(unknown)}")
        return [a.strip() for a in answer]

    if not isinstance(answer, str) or not answer.strip():
        raise ValidationError("This challenge expects a non-empty text answer.")
    if mode == "choice" and normalize_text(answer) not in allowed:
        raise ValidationError(f"Unknown option '{answer}'.")
    return answer.strip()


def is_correct_answer(correct_answer: Any, answer: Answer) -> bool:
    """
    Exact match after normalisation. Lists compare as sets. A
    {"keywords": [...], "min_keywords": n} key grades free text by keyword hits.
    """
    if isinstance(correct_answer, dict) and "keywords" in correct_answer:
        text = normalize_text(answer if isinstance(answer, str) else " ".join(answer))
        keywords = [normalize_text(k) for k in correct_answer.get("keywords") or []]
        needed = correct_answer.get("min_keywords", correct_answer.get("minKeywords", 1))
        return sum(1 for k in keywords if k and k in text) >= needed

    if correct_answer is None:
        # Open-ended prompt with no key: reward a substantive response
        text = answer if isinstance(answer, str) else " ".join(answer)
        return len(text.split()) >= MIN_FREE_TEXT_WORDS

    if isinstance(correct_answer, list) or isinstance(answer, list):
        expected = correct_answer if isinstance(correct_answer, list) else [correct_answer]
        given = answer if isinstance(answer, list) else [answer]
        return {normalize_text(a) for a in expected} == {normalize_text(a) for a in given}

    return normalize_text(correct_answer) == normalize_text(answer)


def calculate_xp(challenge: Challenge, is_correct: bool, time_spent_seconds: int, streak: int) -> int:
    """XP for one submission; `streak` is the user's live streak before this answer."""
    base = challenge.xp_reward or 0
    if not is_correct:
        return int(math.floor(base * PARTIAL_CREDIT + 1e-9))

    multiplier = 1 + min(STREAK_BONUS_CAP, STREAK_BONUS_PER_STEP * (streak // STREAK_STEP_DAYS))
    expected = (challenge.estimated_time_minutes or 0) * 60
    if expected > 0:
        if time_spent_seconds < expected * 0.5:
            multiplier *= FAST_FACTOR
        elif time_spent_seconds > expected * 2:
            multiplier *= SLOW_FACTOR
    return int(math.floor(base * multiplier + 1e-9))


_HINTS = {
    ChallengeType.LOGIC_PUZZLE: "Remember to carefully analyze each option and look for logical flaws.",
    ChallengeType.BIAS_SWAP: (
        "Try to identify specific language that indicates bias, such as loaded words or one-sided framing."
    ),
    ChallengeType.DATA_LITERACY: (
        "When analyzing data, look for misleading scales, cherry-picked data points, or missing context."
    ),
    ChallengeType.FALLACY_DETECTION: "Check whether the conclusion really follows from the premises.",
}


def build_feedback(challenge: Challenge, is_correct: bool) -> str:
    if is_correct:
        return challenge.explanation or "Great job! You've correctly completed this challenge."
    base = challenge.explanation or "Not quite right. Let's review the concept."
    hint = _HINTS.get(ChallengeType.parse(challenge.type))
    return f"{base} {hint}" if hint else base
