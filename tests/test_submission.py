from datetime import date

import pytest
from sqlalchemy import func, select

from conftest import at, make_challenge, make_user
from core.errors import NotFoundError, ValidationError
from models.challenge import ChallengeSubmission
from models.user import User, UserChallengeStats
from schemas.challenge import BatchSubmitItem
from services.challenge_service import with_averages
from services.submission_service import ChallengeSubmissionService, advance_streak, live_streak


async def _rows(db):
    result = await db.execute(select(ChallengeSubmission).order_by(ChallengeSubmission.id))
    return result.scalars().all()


async def _stats(db, user_id):
    result = await db.execute(select(UserChallengeStats).where(UserChallengeStats.user_id == user_id))
    return result.scalar_one_or_none()


# ── Grading, XP, persistence ──────────────────────────────────────────────────

async def test_correct_submission_awards_xp_and_starts_streak(db):
    user = await make_user(db)
    challenge = await make_challenge(db)

    result = await ChallengeSubmissionService(db).submit(user.id, challenge.id, "a", 200, now=at(1))

    assert result.is_correct is True
    assert result.xp_earned == 10
    assert result.attempts == 1
    assert result.streak_info.current == 1
    assert result.streak_info.longest == 1
    assert result.streak_info.is_active_today is True
    assert result.streak_info.is_new_record is True

    user_row = await db.get(User, user.id)
    assert user_row.total_xp == 10
    assert user_row.current_streak == 1
    assert user_row.last_activity_date == date(2026, 3, 1)


@pytest.mark.parametrize(
    "answer, seconds, xp",
    [
        ("a", 60, 12),     # under half the estimate
        ("a", 700, 9),     # over double the estimate
        ("b", 60, 3),      # wrong answers earn partial credit only
    ],
)
async def test_xp_time_modifiers(db, answer, seconds, xp):
    user = await make_user(db)
    challenge = await make_challenge(db)
    result = await ChallengeSubmissionService(db).submit(user.id, challenge.id, answer, seconds, now=at(1))
    assert result.xp_earned == xp


async def test_streak_multiplier_uses_streak_before_submission(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    user.current_streak = 5
    db.add(UserChallengeStats(
        user_id=user.id, total_completed=5, total_correct=5, total_xp_earned=50,
        longest_streak=5, last_streak_date=date(2026, 3, 9), type_performance={},
    ))
    await db.commit()

    result = await ChallengeSubmissionService(db).submit(user.id, challenge.id, "a", 200, now=at(10))
    assert result.xp_earned == 11
    assert result.streak_info.current == 6
    assert result.streak_info.is_new_record is True


async def test_retries_are_recorded_as_separate_rows(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = ChallengeSubmissionService(db)

    first = await service.submit(user.id, challenge.id, "b", 30, now=at(1, 9))
    second = await service.submit(user.id, challenge.id, "a", 30, now=at(1, 10))

    assert (first.attempts, second.attempts) == (1, 2)
    rows = await _rows(db)
    assert [(r.attempts, r.is_correct) for r in rows] == [(1, False), (2, True)]
    assert first.submission_id != second.submission_id


async def test_stats_are_updated_with_every_submission(db):
    user = await make_user(db)
    puzzle = await make_challenge(db)
    chart = await make_challenge(db, type="data_literacy", title="Chart")
    service = ChallengeSubmissionService(db)

    await service.submit(user.id, puzzle.id, "a", 200, now=at(1))
    await service.submit(user.id, chart.id, "c", 200, now=at(1))

    stats = await _stats(db, user.id)
    assert stats.total_completed == 2
    assert stats.total_correct == 1
    assert stats.total_xp_earned == 13
    assert stats.type_performance["logic_puzzle"] == {"completed": 1, "correct": 1, "xp": 10, "time_spent": 200}
    assert stats.type_performance["data_literacy"] == {"completed": 1, "correct": 0, "xp": 3, "time_spent": 200}
    assert stats.difficulty_performance == {"1": {"completed": 2, "correct": 1, "xp": 13, "time_spent": 400}}


# ── Streaks ───────────────────────────────────────────────────────────────────

async def test_streak_grows_once_per_day(db):
    user = await make_user(db)
    a = await make_challenge(db, title="One")
    b = await make_challenge(db, title="Two")
    service = ChallengeSubmissionService(db)

    await service.submit(user.id, a.id, "a", 200, now=at(1))
    await service.submit(user.id, a.id, "a", 200, now=at(2, 9))
    result = await service.submit(user.id, b.id, "a", 200, now=at(2, 15))

    assert result.streak_info.current == 2
    assert result.streak_info.longest == 2


async def test_missed_day_restarts_streak_at_one(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = ChallengeSubmissionService(db)

    await service.submit(user.id, challenge.id, "a", 200, now=at(1))
    await service.submit(user.id, challenge.id, "a", 200, now=at(2))
    result = await service.submit(user.id, challenge.id, "a", 200, now=at(4))

    assert result.streak_info.current == 1
    assert result.streak_info.longest == 2
    assert result.streak_info.streak_maintained is False


async def test_wrong_answer_after_missed_day_zeroes_streak(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = ChallengeSubmissionService(db)

    await service.submit(user.id, challenge.id, "a", 200, now=at(1))
    result = await service.submit(user.id, challenge.id, "b", 200, now=at(3))

    assert result.streak_info.current == 0
    assert result.streak_info.is_active_today is False


async def test_wrong_answer_the_next_day_keeps_streak_alive(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = ChallengeSubmissionService(db)

    await service.submit(user.id, challenge.id, "a", 200, now=at(1))
    result = await service.submit(user.id, challenge.id, "b", 200, now=at(2))

    assert result.streak_info.current == 1
    assert result.streak_info.streak_maintained is True


def test_live_streak_expires_after_a_missed_day():
    assert live_streak(4, date(2026, 3, 9), date(2026, 3, 10)) == 4
    assert live_streak(4, date(2026, 3, 8), date(2026, 3, 10)) == 0
    assert live_streak(4, None, date(2026, 3, 10)) == 0


def test_advance_streak_never_double_counts_a_day():
    user = User(current_streak=3)
    stats = UserChallengeStats(longest_streak=5, last_streak_date=date(2026, 3, 10))
    info = advance_streak(user, stats, True, date(2026, 3, 10))
    assert info.current == 3
    assert info.is_new_record is False


# ── Validation ────────────────────────────────────────────────────────────────

async def test_unknown_challenge_is_not_found(db):
    user = await make_user(db)
    with pytest.raises(NotFoundError):
        await ChallengeSubmissionService(db).submit(user.id, 999, "a", 10, now=at(1))


async def test_inactive_challenge_is_rejected(db):
    user = await make_user(db)
    challenge = await make_challenge(db, is_active=False)
    with pytest.raises(ValidationError):
        await ChallengeSubmissionService(db).submit(user.id, challenge.id, "a", 10, now=at(1))


async def test_invalid_answer_leaves_no_trace(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = ChallengeSubmissionService(db)

    with pytest.raises(ValidationError):
        await service.submit(user.id, challenge.id, "z", 10, now=at(1))
    with pytest.raises(ValidationError):
        await service.submit(user.id, challenge.id, ["a"], 10, now=at(1))
    with pytest.raises(ValidationError):
        await service.submit(user.id, challenge.id, "a", -1, now=at(1))

    assert await _rows(db) == []
    assert await _stats(db, user.id) is None


async def test_no_retry_challenge_rejects_resubmission_after_success(db):
    user = await make_user(db)
    challenge = await make_challenge(db, allow_retries=False)
    service = ChallengeSubmissionService(db)

    await service.submit(user.id, challenge.id, "b", 30, now=at(1, 9))
    await service.submit(user.id, challenge.id, "a", 30, now=at(1, 10))
    with pytest.raises(ValidationError):
        await service.submit(user.id, challenge.id, "a", 30, now=at(1, 11))

    assert len(await _rows(db)) == 2


# ── Batch ─────────────────────────────────────────────────────────────────────

async def test_batch_reports_failures_per_item(db):
    user = await make_user(db)
    a = await make_challenge(db, title="One")
    b = await make_challenge(db, title="Two")
    items = [
        BatchSubmitItem(challenge_id=a.id, answer="a", time_spent_seconds=100),
        BatchSubmitItem(challenge_id=b.id, answer="b", time_spent_seconds=100),
        BatchSubmitItem(challenge_id=999, answer="a", time_spent_seconds=100),
        BatchSubmitItem(challenge_id=b.id, answer="a", time_spent_seconds=100),
    ]

    results = await ChallengeSubmissionService(db).submit_batch(user.id, items, now=at(1))

    assert [r.success for r in results] == [True, True, False, True]
    assert results[2].error["code"] == "NOT_FOUND"
    assert results[2].result is None
    assert results[3].result.attempts == 2
    assert len(await _rows(db)) == 3
    assert await db.scalar(select(func.count(ChallengeSubmission.id))) == 3


async def test_batch_size_limits(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = ChallengeSubmissionService(db)
    item = BatchSubmitItem(challenge_id=challenge.id, answer="a", time_spent_seconds=10)

    with pytest.raises(ValidationError):
        await service.submit_batch(user.id, [])
    with pytest.raises(ValidationError):
        await service.submit_batch(user.id, [item] * 11)
    assert await _rows(db) == []


async def test_batch_accepts_raw_items_and_rejects_malformed_ones_alone(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    items = [
        {"challengeId": challenge.id, "answer": "a", "timeSpentSeconds": 100},
        {"challengeId": challenge.id, "answer": "a", "timeSpentSeconds": "soon"},
        {"challenge_id": challenge.id, "answer": "b"},
    ]

    results = await ChallengeSubmissionService(db).submit_batch(user.id, items, now=at(1))

    assert [r.success for r in results] == [True, False, True]
    assert results[1].challenge_id == challenge.id
    assert results[1].error["code"] == "VALIDATION_ERROR"
    assert results[2].result.attempts == 2
    assert len(await _rows(db)) == 2


def test_stats_entries_carry_average_time():
    entries = with_averages({"2": {"completed": 4, "correct": 3, "xp": 40, "time_spent": 250}, "3": {}})
    assert entries["2"] == {"completed": 4, "correct": 3, "xp": 40, "average_time_seconds": 62.5}
    assert entries["3"]["average_time_seconds"] == 0.0
