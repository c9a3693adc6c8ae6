"""Service for tracking a user's spaced-repetition state per vocabulary item."""
import logging
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import func

from lingualeap.config import settings
from lingualeap.errors import UniquenessViolation, ValidationError
from lingualeap.models.base import to_utc, utcnow
from lingualeap.models.models import UserVocabularyProgress
from lingualeap.models.progress_models import ProficiencyLevel, ProgressStats, coerce_enum
from lingualeap.services.progress_service import ProgressService, require_id, resolve_limit

logger = logging.getLogger(__name__)


class VocabularyProgressService(ProgressService):
    """Service for tracking a user's spaced-repetition state per vocabulary item.

    Level transitions and review intervals are decided by the caller; the
    store only records them.
    """

    model = UserVocabularyProgress
    item_field = "vocabulary_id"
    store_name = "vocabulary"

    def get_progress(self, user_id: int, vocabulary_id: int) -> UserVocabularyProgress:
        """Get the progress record for a user and vocabulary item."""
        self._validate_pair(user_id, vocabulary_id)
        return self._get_or_raise(user_id, vocabulary_id)

    def create_progress(
        self,
        user_id: int,
        vocabulary_id: int,
        custom_notes: Optional[str] = None,
    ) -> UserVocabularyProgress:
        """Insert an unreviewed record at level NEW."""
        self._validate_pair(user_id, vocabulary_id)
        _check_notes(custom_notes)
        return self._create(user_id, vocabulary_id, custom_notes=custom_notes)

    def record_review(
        self,
        user_id: int,
        vocabulary_id: int,
        new_level: Union[ProficiencyLevel, str],
        next_review_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> UserVocabularyProgress:
        """Record one review, creating the record on the first one."""
        self._validate_pair(user_id, vocabulary_id)
        level = coerce_enum(ProficiencyLevel, new_level, "proficiency_level")
        reviewed_at = to_utc(now) or utcnow()
        next_review_at = to_utc(next_review_at)

        progress = self._find(user_id, vocabulary_id)
        if progress is None:
            try:
                return self._insert(
                    user_id,
                    vocabulary_id,
                    operation="review",
                    review_count=1,
                    last_reviewed_at=reviewed_at,
                    proficiency_level=level,
                    next_review_at=next_review_at,
                )
            except UniquenessViolation:
                logger.info(
                    "Lost create race for user %s vocabulary %s, updating existing record",
                    user_id, vocabulary_id,
                )
                progress = self._get_or_raise(user_id, vocabulary_id)

        progress.review_count = UserVocabularyProgress.review_count + 1
        progress.last_reviewed_at = reviewed_at
        progress.proficiency_level = level
        progress.next_review_at = next_review_at
        return self._commit(progress, "review")

    def update_notes(
        self,
        user_id: int,
        vocabulary_id: int,
        custom_notes: Optional[str],
    ) -> UserVocabularyProgress:
        """Set or clear the notes on an existing record."""
        self._validate_pair(user_id, vocabulary_id)
        _check_notes(custom_notes)
        progress = self._get_or_raise(user_id, vocabulary_id)
        progress.custom_notes = custom_notes
        return self._commit(progress, "notes")

    def list_for_user(
        self,
        user_id: int,
        level: Optional[Union[ProficiencyLevel, str]] = None,
        due_only: bool = False,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[UserVocabularyProgress]:
        """Get a user's vocabulary progress ordered by next review time."""
        require_id(user_id, "user_id")
        limit = resolve_limit(limit, settings.progress.list_limit)
        query = self.db.query(UserVocabularyProgress).filter(UserVocabularyProgress.user_id == user_id)

        if level is not None:
            query = query.filter(
                UserVocabularyProgress.proficiency_level
                == coerce_enum(ProficiencyLevel, level, "proficiency_level")
            )
        if due_only:
            query = query.filter(UserVocabularyProgress.next_review_at <= to_utc(now or utcnow()))

        return (
            query.order_by(
                UserVocabularyProgress.next_review_at.asc().nullslast(),
                UserVocabularyProgress.id,
            )
            .limit(limit)
            .all()
        )

    def get_due_for_review(
        self,
        user_id: int,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[UserVocabularyProgress]:
        """Get records due for review, oldest due first."""
        return self.list_for_user(
            user_id,
            due_only=True,
            now=now,
            limit=resolve_limit(limit, settings.progress.review_batch_size),
        )

    def get_user_stats(self, user_id: int) -> ProgressStats:
        """Count a user's records per proficiency level."""
        require_id(user_id, "user_id")
        rows = (
            self.db.query(
                UserVocabularyProgress.proficiency_level,
                func.count(UserVocabularyProgress.id),
                func.coalesce(func.sum(UserVocabularyProgress.review_count), 0),
            )
            .filter(UserVocabularyProgress.user_id == user_id)
            .group_by(UserVocabularyProgress.proficiency_level)
            .all()
        )

        stats = ProgressStats(
            user_id=user_id,
            counts={level.name: 0 for level in ProficiencyLevel},
        )
        for level, count, reviews in rows:
            stats.counts[level.name] = count
            stats.total_interactions += int(reviews)
        return stats


def _check_notes(custom_notes: Optional[str]) -> None:
    if custom_notes is not None and not isinstance(custom_notes, str):
        raise ValidationError(f"custom_notes must be text, got {type(custom_notes).__name__}")
