#!/usr/bin/env python
# scripts/seed_challenges.py
"""
Seeds the challenge catalogue with a starter set, one or more per challenge
type and spread over the four difficulty tiers. Every entry goes through the
same content validation as the API, so a malformed entry stops the run.

Challenges whose title already exists are skipped, so the script can be re-run.

Run:  python scripts/seed_challenges.py
"""
import asyncio
import logging

from sqlalchemy import select

from core.logging_config import configure_logging
from db.session import AsyncSessionLocal, Base, engine
from models import user, challenge as challenge_models, content, echo_score  # noqa: F401
from models.challenge import Challenge
from schemas.challenge import ChallengeCreate
from services.challenge_service import ChallengeService

logger = logging.getLogger("seed")

STARTER_CHALLENGES = [
    {
        "type": "logic_puzzle",
        "title": "All roses are flowers",
        "prompt": "Which conclusion follows from the premises?",
        "content": {
            "kind": "options",
            "question": "All roses are flowers. Some flowers fade quickly.",
            "options": [
                {"id": "a", "text": "All roses fade quickly."},
                {"id": "b", "text": "Some roses may fade quickly, but it does not follow."},
                {"id": "c", "text": "No roses fade quickly."},
            ],
        },
        "correct_answer": "b",
        "explanation": "The premises say nothing about which flowers fade, so no conclusion about roses follows.",
        "difficulty": 1,
        "estimated_time_minutes": 3,
        "xp_reward": 10,
    },
    {
        "type": "logic_puzzle",
        "title": "The missing premise",
        "prompt": "Which assumption does the argument rely on?",
        "content": {
            "kind": "options",
            "question": "The city should build more bike lanes, because cycling reduces traffic.",
            "options": [
                {"id": "a", "text": "People will cycle more if there are more bike lanes."},
                {"id": "b", "text": "Cars are more expensive than bicycles."},
                {"id": "c", "text": "Traffic is worse in winter."},
            ],
        },
        "correct_answer": "a",
        "explanation": "Without more cyclists, new lanes would not reduce traffic.",
        "difficulty": 2,
        "estimated_time_minutes": 4,
        "xp_reward": 15,
    },
    {
        "type": "bias_swap",
        "title": "Same rally, two headlines",
        "prompt": "Select every indicator of bias you can find across the two reports.",
        "content": {
            "kind": "articles",
            "instructions": "Compare the wording of both reports of the same event.",
            "articles": [
                {"title": "Thousands rally for fair wages", "source": "Daily Ledger", "bias_rating": -2},
                {"title": "Protesters snarl downtown traffic", "source": "Morning Post", "bias_rating": 2},
            ],
            "indicators": ["loaded language", "omitted context", "selective quotes", "neutral tone"],
        },
        "correct_answer": ["loaded language", "omitted context"],
        "explanation": "Both headlines frame the event through word choice and leave out what the other reports.",
        "difficulty": 2,
        "estimated_time_minutes": 6,
        "xp_reward": 20,
        "allow_retries": False,
    },
    {
        "type": "data_literacy",
        "title": "The truncated axis",
        "prompt": "What makes this chart misleading?",
        "content": {
            "kind": "options",
            "data_visualization": "Bar chart of sales: 2022 = 98, 2023 = 102, y-axis starting at 95.",
            "options": [
                {"id": "a", "text": "The y-axis does not start at zero, exaggerating a small change."},
                {"id": "b", "text": "Sales fell between the two years."},
                {"id": "c", "text": "The chart uses the wrong colours."},
            ],
        },
        "correct_answer": "a",
        "explanation": "A 4% rise looks like a doubling when the axis starts at 95.",
        "difficulty": 1,
        "estimated_time_minutes": 3,
        "xp_reward": 10,
    },
    {
        "type": "fallacy_detection",
        "title": "Everyone is doing it",
        "prompt": "Name the fallacy.",
        "content": {
            "kind": "options",
            "question": "Millions of people use this supplement, so it must work.",
            "options": [
                {"id": "ad_populum", "text": "Appeal to popularity"},
                {"id": "strawman", "text": "Straw man"},
                {"id": "ad_hominem", "text": "Ad hominem"},
            ],
        },
        "correct_answer": "ad_populum",
        "explanation": "Popularity is not evidence of effectiveness.",
        "difficulty": 1,
        "estimated_time_minutes": 2,
        "xp_reward": 10,
    },
    {
        "type": "fallacy_detection",
        "title": "Slippery slope or fair warning?",
        "prompt": "Which fallacies appear in the argument? Select all that apply.",
        "content": {
            "kind": "options",
            "multi_select": True,
            "question": (
                "If we allow a four-day week, soon nobody will work at all, "
                "and my opponent only supports it because he is lazy."
            ),
            "options": [
                {"id": "slippery_slope", "text": "Slippery slope"},
                {"id": "ad_hominem", "text": "Ad hominem"},
                {"id": "false_dilemma", "text": "False dilemma"},
            ],
        },
        "correct_answer": ["slippery_slope", "ad_hominem"],
        "explanation": "The argument predicts an unsupported chain of events and attacks the person.",
        "difficulty": 3,
        "estimated_time_minutes": 5,
        "xp_reward": 25,
    },
    {
        "type": "synthesis",
        "title": "Finding common ground on housing",
        "prompt": "Write one sentence both authors would agree with.",
        "content": {
            "kind": "articles",
            "articles": [
                {"title": "Zoning reform will lower rents", "source": "Urban Review", "bias_rating": -1},
                {"title": "Let the market build", "source": "Free Enterprise Weekly", "bias_rating": 2},
            ],
        },
        "correct_answer": {"keywords": ["supply", "housing", "build"], "min_keywords": 2},
        "explanation": "Both pieces argue that more housing supply would help affordability.",
        "difficulty": 3,
        "estimated_time_minutes": 8,
        "xp_reward": 30,
    },
    {
        "type": "moral_reasoning",
        "title": "The self-driving dilemma",
        "prompt": "Decide what the car should do and defend the principle behind it in at least 50 words.",
        "content": {
            "kind": "scenario",
            "scenario": (
                "A self-driving car must choose between swerving into one pedestrian "
                "or staying on course toward three."
            ),
        },
        "correct_answer": None,
        "explanation": "There is no single right answer; the goal is to reason from a clear principle.",
        "difficulty": 2,
        "estimated_time_minutes": 5,
        "xp_reward": 15,
    },
    {
        "type": "counter_argument",
        "title": "Steelman the other side",
        "prompt": "Write the strongest argument against the claim below in at least 50 words.",
        "content": {
            "kind": "scenario",
            "scenario": "Social media has made public debate better informed.",
        },
        "correct_answer": None,
        "explanation": "A strong counter-argument engages the best version of the claim.",
        "difficulty": 4,
        "estimated_time_minutes": 10,
        "xp_reward": 40,
    },
]


async def seed() -> int:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    created = 0
    async with AsyncSessionLocal() as db:
        existing = set((await db.execute(select(Challenge.title))).scalars().all())
        service = ChallengeService(db)
        for entry in STARTER_CHALLENGES:
            if entry["title"] in existing:
                logger.info(f"skip  {entry['title']}")
                continue
            challenge = await service.create_challenge(ChallengeCreate(**entry))
            logger.info(f"added #{challenge.id} [{challenge.type}] {challenge.title}")
            created += 1
        await db.commit()

    await engine.dispose()
    return created


if __name__ == "__main__":
    configure_logging()
    count = asyncio.run(seed())
    print(f"✅ Seeded {count} challenge(s).")
