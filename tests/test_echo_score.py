import math
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from conftest import add_read, add_submission, at, make_challenge, make_user
from core.errors import ValidationError
from models.echo_score import EchoScoreHistory
from models.user import User
from services.echo_score_service import (
    WEIGHTS,
    EchoScoreService,
    accuracy_score,
    combine,
    consistency_score,
    diversity_score,
    improvement_score,
    switch_speed_score,
    validate_weights,
)
from tasks.background import SUBMISSIONS_BEFORE_RECALC, refresh_echo_score_after_challenge


# ── Component formulas ────────────────────────────────────────────────────────

def test_weights_sum_to_exactly_one():
    assert math.fsum(WEIGHTS.values()) == 1.0


def test_validate_weights_rejects_bad_sets():
    with pytest.raises(ValueError):
        validate_weights({**WEIGHTS, "diversity": 0.3})
    with pytest.raises(ValueError):
        validate_weights({"diversity": 1.0})


def test_diversity_counts_distinct_buckets():
    assert diversity_score([]) == 0.0
    assert diversity_score([-3, -2, -1, 0, 1, 2, 3]) == 100.0
    assert diversity_score([1, 1, 1]) == pytest.approx(100 / 7)


def test_accuracy_is_share_of_correct_answers():
    assert accuracy_score(7, 10) == 70.0
    assert accuracy_score(0, 0) == 0.0


def test_switch_speed_uses_median_gap_between_opposite_leans():
    t0 = datetime(2026, 3, 1, 9)
    fast = [(t0, -2), (t0 + timedelta(minutes=30), 2)]
    slow = [(t0, -2), (t0 + timedelta(hours=80), 1)]
    assert switch_speed_score(fast) == 100.0
    assert switch_speed_score(slow) == 0.0


def test_switch_speed_ignores_centre_and_same_side_reads():
    t0 = datetime(2026, 3, 1, 9)
    reads = [(t0, -1), (t0 + timedelta(hours=1), 0), (t0 + timedelta(hours=2), -3)]
    assert switch_speed_score(reads) == 0.0


def test_consistency_is_active_share_of_window():
    assert consistency_score(3, 6) == 50.0
    assert consistency_score(0, 6) == 0.0
    assert consistency_score(2, 0) == 0.0


def test_improvement_defaults():
    assert improvement_score([], []) == 0.0
    # Activity, but not enough of it to compare two halves
    assert improvement_score([True], []) == 50.0


def test_improvement_compares_recent_half_with_earlier_half():
    assert improvement_score([False, False, True, True], []) == 100.0
    assert improvement_score([True, True, False, False], []) == 0.0
    assert improvement_score([True, False, True, False], []) == 50.0


def test_combine_is_clamped_and_rounded():
    assert combine({name: 100.0 for name in WEIGHTS}) == 100.0
    assert combine({name: 0.0 for name in WEIGHTS}) == 0.0
    assert combine({name: 33.333 for name in WEIGHTS}) == 33.33


# ── Service ───────────────────────────────────────────────────────────────────

async def test_new_user_scores_zero_everywhere(db):
    user = await make_user(db)
    result = await EchoScoreService(db).calculate(user.id, now=at(10))

    assert result.diversity_score == 0.0
    assert result.accuracy_score == 0.0
    assert result.switch_speed_score == 0.0
    assert result.consistency_score == 0.0
    assert result.improvement_score == 0.0
    assert result.total_score == 0.0
    assert result.calculation_details["total_answers"] == 0


async def test_seven_of_ten_correct_gives_accuracy_70(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    for i in range(10):
        await add_submission(db, user, challenge, is_correct=i < 7, created_at=at(5, 9, i))

    result = await EchoScoreService(db).calculate(user.id, now=at(5, 18))
    assert result.accuracy_score == 70.0
    assert result.calculation_details["accurate_answers"] == 7
    assert result.calculation_details["total_answers"] == 10
    assert result.calculation_details["challenges_completed"] == 1


async def test_four_day_window_scenario(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    for day, ok in zip((1, 2, 3, 4), (True, True, False, True)):
        await add_submission(db, user, challenge, is_correct=ok, created_at=at(day))

    result = await EchoScoreService(db).calculate(user.id, days=4, now=at(4, 18))

    assert result.accuracy_score == 75.0
    assert result.consistency_score == 100.0
    assert result.improvement_score == 25.0
    assert result.diversity_score == 0.0
    assert result.total_score == 37.5


async def test_window_excludes_older_activity(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    await add_submission(db, user, challenge, is_correct=False, created_at=at(1))
    await add_submission(db, user, challenge, is_correct=True, created_at=at(9))

    result = await EchoScoreService(db).calculate(user.id, days=2, now=at(10))
    assert result.calculation_details["total_answers"] == 1
    assert result.accuracy_score == 100.0
    assert result.consistency_score == 50.0


async def test_reads_feed_diversity_and_switch_speed(db):
    user = await make_user(db)
    await add_read(db, user, -3, at(2, 9))
    await add_read(db, user, 3, at(2, 9, 30))
    await add_read(db, user, 0, at(2, 10))

    result = await EchoScoreService(db).calculate(user.id, now=at(2, 20))
    assert result.diversity_score == round(3 * 100 / 7, 2)
    assert result.switch_speed_score == 100.0
    assert result.calculation_details["articles_read"] == 3
    assert result.calculation_details["perspectives_explored"] == 3
    assert 0.0 <= result.total_score <= 100.0


async def test_invalid_window_is_rejected(db):
    user = await make_user(db)
    service = EchoScoreService(db)
    with pytest.raises(ValidationError):
        await service.calculate(user.id, days=0)
    with pytest.raises(ValidationError):
        await service.calculate(user.id, days=366)


async def test_preview_writes_nothing(db):
    user = await make_user(db)
    await EchoScoreService(db).calculate(user.id, now=at(3))
    count = await db.scalar(select(func.count(EchoScoreHistory.id)))
    assert count == 0


async def test_calculate_and_save_appends_history_and_updates_user(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    await add_submission(db, user, challenge, is_correct=True, created_at=at(3))
    service = EchoScoreService(db)

    first = await service.calculate_and_save(user.id, now=at(3, 20))
    second = await service.calculate_and_save(user.id, now=at(4, 20))
    await db.commit()

    assert first.id is not None and second.id != first.id
    rows = (await db.execute(select(EchoScoreHistory).order_by(EchoScoreHistory.id))).scalars().all()
    assert [r.score_date for r in rows] == [at(3).date(), at(4).date()]

    refreshed = await db.get(User, user.id)
    assert refreshed.echo_score == second.total_score

    latest = await service.get_latest(user.id)
    assert latest.id == second.id


async def test_get_latest_without_history_is_none(db):
    user = await make_user(db)
    assert await EchoScoreService(db).get_latest(user.id) is None


async def test_progress_buckets_and_trends(db):
    user = await make_user(db)
    challenge = await make_challenge(db)
    service = EchoScoreService(db)

    await add_submission(db, user, challenge, is_correct=False, created_at=at(2))
    await service.calculate_and_save(user.id, now=at(2, 20))
    await add_submission(db, user, challenge, is_correct=True, created_at=at(3))
    await service.calculate_and_save(user.id, now=at(3, 20))
    await db.commit()

    daily = await service.get_progress(user.id, period="daily", days=30, now=at(3, 21))
    assert [p["score_date"] for p in daily.scores] == [at(2).date(), at(3).date()]
    assert daily.trends["accuracy"] == 50.0

    # 2026-03-02 and 2026-03-03 fall in the same ISO week
    weekly = await service.get_progress(user.id, period="weekly", days=30, now=at(3, 21))
    assert len(weekly.scores) == 1
    assert weekly.scores[0]["accuracy"] == 50.0
    assert weekly.trends["total"] == 0.0


async def test_progress_rejects_unknown_period(db):
    user = await make_user(db)
    with pytest.raises(ValidationError):
        await EchoScoreService(db).get_progress(user.id, period="monthly")


# ── Background refresh ────────────────────────────────────────────────────────

async def test_background_refresh_saves_once_per_day_under_the_user_lock(db, session_factory, orm_statements):
    user = await make_user(db)
    challenge = await make_challenge(db)
    now = datetime.utcnow()
    for _ in range(SUBMISSIONS_BEFORE_RECALC):
        await add_submission(db, user, challenge, True, now)
    orm_statements.clear()

    await refresh_echo_score_after_challenge(user.id, session_factory)
    await refresh_echo_score_after_challenge(user.id, session_factory)

    saved = await db.scalar(select(func.count(EchoScoreHistory.id)).where(EchoScoreHistory.user_id == user.id))
    assert saved == 1
    assert "FROM users" in orm_statements[0]
    assert "FOR UPDATE" in orm_statements[0]


async def test_background_refresh_waits_for_enough_submissions(db, session_factory):
    user = await make_user(db)
    challenge = await make_challenge(db)
    await add_submission(db, user, challenge, True, datetime.utcnow())

    await refresh_echo_score_after_challenge(user.id, session_factory)

    assert await db.scalar(select(func.count(EchoScoreHistory.id))) == 0
