"""Service for tracking a user's progress on exercises."""
import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import func

from lingualeap.config import settings
from lingualeap.errors import UniquenessViolation
from lingualeap.models.base import to_utc, utcnow
from lingualeap.models.models import UserExerciseProgress
from lingualeap.models.progress_models import (
    AttemptOutcome,
    ExerciseStatus,
    ProgressStats,
    coerce_enum,
)
from lingualeap.services.progress_service import ProgressService, require_id, resolve_limit

logger = logging.getLogger(__name__)


class ExerciseProgressService(ProgressService):
    """Service for tracking a user's progress on exercises."""

    model = UserExerciseProgress
    item_field = "exercise_id"
    store_name = "exercise"

    def get_progress(self, user_id: int, exercise_id: int) -> UserExerciseProgress:
        """Get the progress record for a user and exercise.

        Raises NotFound when the user has never interacted with the exercise.
        """
        self._validate_pair(user_id, exercise_id)
        return self._get_or_raise(user_id, exercise_id)

    def create_progress(self, user_id: int, exercise_id: int) -> UserExerciseProgress:
        """Insert an untouched record (NOT_STARTED, no attempts)."""
        self._validate_pair(user_id, exercise_id)
        return self._create(user_id, exercise_id)

    def upsert_attempt(
        self,
        user_id: int,
        exercise_id: int,
        outcome: Union[AttemptOutcome, Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> UserExerciseProgress:
        """Record one attempt, creating the record on the first one.

        The first attempt is written by a single insert carrying its outcome.
        Later attempts overwrite status, score and last_attempted_at and
        increment the attempt counter in SQL.
        """
        self._validate_pair(user_id, exercise_id)
        outcome = AttemptOutcome.from_value(outcome)
        attempted_at = to_utc(now) or utcnow()

        progress = self._find(user_id, exercise_id)
        if progress is None:
            try:
                return self._insert(
                    user_id,
                    exercise_id,
                    operation="attempt",
                    attempts=1,
                    status=outcome.status,
                    score=outcome.score,
                    last_attempted_at=attempted_at,
                )
            except UniquenessViolation:
                # Another writer created the pair between our read and insert
                logger.info(
                    "Lost create race for user %s exercise %s, updating existing record",
                    user_id, exercise_id,
                )
                progress = self._get_or_raise(user_id, exercise_id)

        progress.attempts = UserExerciseProgress.attempts + 1
        progress.status = outcome.status
        progress.score = outcome.score
        progress.last_attempted_at = attempted_at
        return self._commit(progress, "attempt")

    def list_for_user(
        self,
        user_id: int,
        status: Optional[Union[ExerciseStatus, str]] = None,
        limit: Optional[int] = None,
    ) -> List[UserExerciseProgress]:
        """Get a user's exercise progress, most recently attempted first."""
        require_id(user_id, "user_id")
        limit = resolve_limit(limit, settings.progress.list_limit)
        query = self.db.query(UserExerciseProgress).filter(UserExerciseProgress.user_id == user_id)

        if status is not None:
            query = query.filter(
                UserExerciseProgress.status == coerce_enum(ExerciseStatus, status, "status")
            )

        return (
            query.order_by(
                UserExerciseProgress.last_attempted_at.desc().nullslast(),
                UserExerciseProgress.id.desc(),
            )
            .limit(limit)
            .all()
        )

    def get_user_stats(self, user_id: int) -> ProgressStats:
        """Count a user's records per status and average their scores."""
        require_id(user_id, "user_id")
        rows = (
            self.db.query(
                UserExerciseProgress.status,
                func.count(UserExerciseProgress.id),
                func.coalesce(func.sum(UserExerciseProgress.attempts), 0),
            )
            .filter(UserExerciseProgress.user_id == user_id)
            .group_by(UserExerciseProgress.status)
            .all()
        )
        average_score = (
            self.db.query(func.avg(UserExerciseProgress.score))
            .filter(
                UserExerciseProgress.user_id == user_id,
                UserExerciseProgress.score.isnot(None),
            )
            .scalar()
        )

        stats = ProgressStats(
            user_id=user_id,
            counts={status.name: 0 for status in ExerciseStatus},
            average_score=float(average_score) if average_score is not None else None,
        )
        for status, count, attempts in rows:
            stats.counts[status.name] = count
            stats.total_interactions += int(attempts)
        return stats
