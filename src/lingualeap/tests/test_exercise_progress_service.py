"""Tests for exercise progress service."""
from datetime import UTC, datetime, timedelta

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from lingualeap.errors import NotFound, UniquenessViolation, UnknownReference, ValidationError
from lingualeap.models.models import Exercise, User, UserExerciseProgress
from lingualeap.models.progress_models import AttemptOutcome, ExerciseStatus
from lingualeap.services.exercise_progress_service import ExerciseProgressService


def metric(name: str, **labels) -> float:
    """Read a counter sample, treating an unused label set as zero."""
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def exercise_service(db: Session) -> ExerciseProgressService:
    """Create an exercise progress service instance."""
    return ExerciseProgressService(db)


def test_first_attempt_creates_record(exercise_service, user: User, exercise: Exercise) -> None:
    """Test that the first attempt creates the record with one attempt."""
    attempted_at = datetime(2026, 5, 1, 9, 30, tzinfo=UTC)

    progress = exercise_service.upsert_attempt(
        user.id,
        exercise.id,
        AttemptOutcome(status=ExerciseStatus.IN_PROGRESS, score=40),
        now=attempted_at,
    )

    assert progress.attempts == 1
    assert progress.status == ExerciseStatus.IN_PROGRESS
    assert progress.score == 40
    assert progress.last_attempted_at == attempted_at


def test_two_attempts_keep_latest_outcome(exercise_service, user: User, exercise: Exercise) -> None:
    """Test IN_PROGRESS/40 followed by COMPLETED/90."""
    exercise_service.upsert_attempt(user.id, exercise.id, {"status": "IN_PROGRESS", "score": 40})
    exercise_service.upsert_attempt(user.id, exercise.id, {"status": "COMPLETED", "score": 90})

    progress = exercise_service.get_progress(user.id, exercise.id)
    assert progress.status == ExerciseStatus.COMPLETED
    assert progress.score == 90
    assert progress.attempts == 2


def test_n_attempts_last_write_wins(db: Session, exercise_service, user: User, exercise: Exercise) -> None:
    """Test that N attempts leave attempts=N and the last outcome."""
    start = datetime(2026, 5, 1, tzinfo=UTC)
    outcomes = [
        ("IN_PROGRESS", 10),
        ("IN_PROGRESS", 55),
        ("COMPLETED", 80),
        ("IN_PROGRESS", None),
        ("COMPLETED", 72.5),
    ]
    for i, (status, score) in enumerate(outcomes):
        exercise_service.upsert_attempt(
            user.id, exercise.id, {"status": status, "score": score}, now=start + timedelta(hours=i)
        )

    progress = exercise_service.get_progress(user.id, exercise.id)
    assert progress.attempts == len(outcomes)
    assert progress.status == ExerciseStatus.COMPLETED
    assert progress.score == 72.5
    assert progress.last_attempted_at == start + timedelta(hours=len(outcomes) - 1)
    assert db.query(UserExerciseProgress).count() == 1


def test_attempt_without_score_clears_score(exercise_service, user: User, exercise: Exercise) -> None:
    """Test that a score-less attempt overwrites the previous score."""
    exercise_service.upsert_attempt(user.id, exercise.id, {"status": "IN_PROGRESS", "score": 30})
    progress = exercise_service.upsert_attempt(user.id, exercise.id, {"status": "IN_PROGRESS"})

    assert progress.score is None
    assert progress.attempts == 2


def test_created_record_then_attempt(exercise_service, user: User, exercise: Exercise) -> None:
    """Test that a raw record with no attempts moves to one attempt."""
    created = exercise_service.create_progress(user.id, exercise.id)
    assert created.attempts == 0
    assert created.status == ExerciseStatus.NOT_STARTED

    progress = exercise_service.upsert_attempt(
        user.id, exercise.id, AttemptOutcome(status="COMPLETED", score=100)
    )
    assert progress.id == created.id
    assert progress.attempts == 1
    assert progress.status == ExerciseStatus.COMPLETED
    assert progress.score == 100


def test_duplicate_create_raises_uniqueness_violation(
    db: Session, exercise_service, user: User, exercise: Exercise
) -> None:
    """Test that a second raw insert for the same pair fails."""
    exercise_service.create_progress(user.id, exercise.id)

    with pytest.raises(UniquenessViolation) as exc_info:
        exercise_service.create_progress(user.id, exercise.id)

    assert exc_info.value.user_id == user.id
    assert exc_info.value.item_id == exercise.id
    assert db.query(UserExerciseProgress).count() == 1


def test_lost_create_race_coalesces_into_update(
    db: Session, exercise_service, user: User, exercise: Exercise, mocker
) -> None:
    """Test that a create losing to a concurrent writer updates the winner's row."""
    winner = exercise_service.create_progress(user.id, exercise.id)
    # The first lookup misses as if the other writer had not committed yet
    mocker.patch.object(exercise_service, "_find", side_effect=[None, winner])

    progress = exercise_service.upsert_attempt(
        user.id, exercise.id, {"status": "IN_PROGRESS", "score": 20}
    )

    assert progress.id == winner.id
    assert progress.attempts == 1
    assert progress.status == ExerciseStatus.IN_PROGRESS
    assert db.query(UserExerciseProgress).count() == 1


def test_get_progress_not_found(exercise_service, user: User, exercise: Exercise) -> None:
    """Test that a missing pair raises NotFound instead of returning defaults."""
    with pytest.raises(NotFound):
        exercise_service.get_progress(user.id, exercise.id)


def test_unknown_exercise_rejected(db: Session, exercise_service, user: User) -> None:
    """Test that attempts on a missing exercise are rejected."""
    with pytest.raises(UnknownReference):
        exercise_service.upsert_attempt(user.id, 987654, {"status": "IN_PROGRESS"})

    assert db.query(UserExerciseProgress).count() == 0


@pytest.mark.parametrize(
    "user_id, exercise_id",
    [(None, 1), (1, None), (0, 1), ("1", 1), (True, 1)],
)
def test_invalid_ids_rejected(exercise_service, user_id, exercise_id) -> None:
    """Test that missing or malformed identifiers are rejected."""
    with pytest.raises(ValidationError):
        exercise_service.upsert_attempt(user_id, exercise_id, {"status": "IN_PROGRESS"})


@pytest.mark.parametrize(
    "outcome",
    [{"status": "FINISHED"}, {"score": 10}, {"status": "COMPLETED", "score": "ninety"}, "COMPLETED"],
)
def test_invalid_outcome_rejected(exercise_service, user: User, exercise: Exercise, outcome) -> None:
    """Test that malformed outcomes are rejected before any write."""
    with pytest.raises(ValidationError):
        exercise_service.upsert_attempt(user.id, exercise.id, outcome)

    with pytest.raises(NotFound):
        exercise_service.get_progress(user.id, exercise.id)


def test_list_for_user(exercise_service, user: User, make_user, make_exercise) -> None:
    """Test listing a user's progress by recency and status."""
    other_user = make_user()
    first, second, third = make_exercise(), make_exercise(), make_exercise()
    start = datetime(2026, 5, 1, tzinfo=UTC)

    exercise_service.upsert_attempt(user.id, first.id, {"status": "COMPLETED", "score": 90}, now=start)
    exercise_service.upsert_attempt(
        user.id, second.id, {"status": "IN_PROGRESS"}, now=start + timedelta(days=1)
    )
    exercise_service.create_progress(user.id, third.id)
    exercise_service.upsert_attempt(other_user.id, first.id, {"status": "COMPLETED"})

    records = exercise_service.list_for_user(user.id)
    assert [r.exercise_id for r in records] == [second.id, first.id, third.id]

    completed = exercise_service.list_for_user(user.id, status=ExerciseStatus.COMPLETED)
    assert [r.exercise_id for r in completed] == [first.id]

    assert len(exercise_service.list_for_user(user.id, limit=1)) == 1


def test_get_user_stats(exercise_service, user: User, make_exercise) -> None:
    """Test per-status counts, attempt totals and average score."""
    first, second, third = make_exercise(), make_exercise(), make_exercise()
    exercise_service.upsert_attempt(user.id, first.id, {"status": "IN_PROGRESS", "score": 40})
    exercise_service.upsert_attempt(user.id, first.id, {"status": "COMPLETED", "score": 90})
    exercise_service.upsert_attempt(user.id, second.id, {"status": "IN_PROGRESS", "score": 50})
    exercise_service.create_progress(user.id, third.id)

    stats = exercise_service.get_user_stats(user.id)

    assert stats.counts == {"NOT_STARTED": 1, "IN_PROGRESS": 1, "COMPLETED": 1}
    assert stats.total_records == 3
    assert stats.total_interactions == 3
    assert stats.average_score == pytest.approx(70.0)


def test_get_user_stats_empty(exercise_service, user: User) -> None:
    """Test stats for a user without progress."""
    stats = exercise_service.get_user_stats(user.id)

    assert stats.total_records == 0
    assert stats.total_interactions == 0
    assert stats.average_score is None


def test_timestamps_are_utc_aware(db: Session, exercise_service, user: User, exercise: Exercise) -> None:
    """Test that stored timestamps come back aware and comparable with now."""
    attempted_at = datetime(2026, 5, 1, 9, 30, tzinfo=UTC)
    exercise_service.upsert_attempt(user.id, exercise.id, {"status": "IN_PROGRESS"}, now=attempted_at)
    db.expire_all()

    progress = exercise_service.get_progress(user.id, exercise.id)

    assert progress.last_attempted_at == attempted_at
    assert progress.last_attempted_at.tzinfo is not None
    assert progress.created_at <= datetime.now(UTC)
    assert progress.updated_at <= datetime.now(UTC)


def test_failed_first_attempt_leaves_no_record(
    db: Session, exercise_service, user: User, exercise: Exercise, mocker
) -> None:
    """Test that a first attempt whose write fails does not leave a record behind."""
    errors_before = metric("lingualeap_db_errors_total", error_type="OperationalError")
    mocker.patch.object(
        db, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
    )

    with pytest.raises(OperationalError):
        exercise_service.upsert_attempt(user.id, exercise.id, {"status": "COMPLETED", "score": 90})

    mocker.stopall()
    assert db.query(UserExerciseProgress).count() == 0
    with pytest.raises(NotFound):
        exercise_service.get_progress(user.id, exercise.id)
    assert metric("lingualeap_db_errors_total", error_type="OperationalError") == errors_before + 1


def test_first_attempt_counts_one_write(exercise_service, user: User, exercise: Exercise) -> None:
    """Test that a first attempt is a single attempt write, not a create plus an attempt."""
    creates = metric("lingualeap_progress_writes_total", store="exercise", operation="create")
    attempts = metric("lingualeap_progress_writes_total", store="exercise", operation="attempt")

    exercise_service.upsert_attempt(user.id, exercise.id, {"status": "IN_PROGRESS", "score": 10})

    assert metric("lingualeap_progress_writes_total", store="exercise", operation="create") == creates
    assert metric("lingualeap_progress_writes_total", store="exercise", operation="attempt") == attempts + 1


def test_duplicate_create_is_counted(exercise_service, user: User, exercise: Exercise) -> None:
    """Test that a rejected raw insert increments the uniqueness counter."""
    exercise_service.create_progress(user.id, exercise.id)
    before = metric("lingualeap_uniqueness_violations_total", store="exercise")

    with pytest.raises(UniquenessViolation):
        exercise_service.create_progress(user.id, exercise.id)

    assert metric("lingualeap_uniqueness_violations_total", store="exercise") == before + 1


def test_coalesced_race_is_not_counted_as_violation(
    exercise_service, user: User, exercise: Exercise, mocker
) -> None:
    """Test that a lost create race is reported as an attempt, not as a duplicate."""
    winner = exercise_service.create_progress(user.id, exercise.id)
    violations = metric("lingualeap_uniqueness_violations_total", store="exercise")
    attempts = metric("lingualeap_progress_writes_total", store="exercise", operation="attempt")
    mocker.patch.object(exercise_service, "_find", side_effect=[None, winner])

    exercise_service.upsert_attempt(user.id, exercise.id, {"status": "COMPLETED", "score": 60})

    assert metric("lingualeap_uniqueness_violations_total", store="exercise") == violations
    assert metric("lingualeap_progress_writes_total", store="exercise", operation="attempt") == attempts + 1


@pytest.mark.parametrize("limit", [0, -1, "5", True])
def test_list_for_user_rejects_bad_limit(exercise_service, user: User, limit) -> None:
    """Test that limits below 1 or of the wrong type are rejected."""
    with pytest.raises(ValidationError, match="limit"):
        exercise_service.list_for_user(user.id, limit=limit)
