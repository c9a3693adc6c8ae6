"""Database models for the data layer."""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from lingualeap.models.base import Base, TimestampMixin, UTCDateTime, to_utc, utcnow
from lingualeap.models.progress_models import ExerciseStatus, ProficiencyLevel


class User(Base, TimestampMixin):
    """User model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(30), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(50), nullable=False)
    current_level = Column(String(2), default="A1")  # A1..C2

    # Relationships
    exercise_progress = relationship("UserExerciseProgress", back_populates="user")
    vocabulary_progress = relationship("UserVocabularyProgress", back_populates="user")


class Exercise(Base, TimestampMixin):
    """Exercise model."""

    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True)
    title = Column(String(200))
    instruction = Column(String(500), nullable=False)
    type = Column(String(50), nullable=False)  # e.g. "multiple_choice", "fill_blank"

    # Relationships
    progress = relationship("UserExerciseProgress", back_populates="exercise")


class Vocabulary(Base, TimestampMixin):
    """Vocabulary item model."""

    __tablename__ = "vocabularies"

    id = Column(Integer, primary_key=True)
    word = Column(String, nullable=False, index=True)
    meaning = Column(String, nullable=False)
    pronunciation = Column(String)
    difficulty = Column(String, nullable=False, default="beginner")

    # Relationships
    progress = relationship("UserVocabularyProgress", back_populates="vocabulary")


class UserExerciseProgress(Base, TimestampMixin):
    """Per-user completion state of one exercise."""

    __tablename__ = "userexerciseprogresses"
    __table_args__ = (
        UniqueConstraint("user_id", "exercise_id", name="uq_user_exercise"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id"), nullable=False, index=True)
    status = Column(
        Enum(ExerciseStatus, name="exercise_status"),
        nullable=False,
        default=ExerciseStatus.NOT_STARTED,
    )
    score = Column(Float)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempted_at = Column(UTCDateTime)

    # Relationships
    user = relationship("User", back_populates="exercise_progress")
    exercise = relationship("Exercise", back_populates="progress")

    def __repr__(self) -> str:
        return (
            f"<UserExerciseProgress user={self.user_id} exercise={self.exercise_id} "
            f"status={self.status} attempts={self.attempts}>"
        )


class UserVocabularyProgress(Base, TimestampMixin):
    """Per-user spaced-repetition state of one vocabulary item."""

    __tablename__ = "uservocabularyprogresses"
    __table_args__ = (
        UniqueConstraint("user_id", "vocabulary_id", name="uq_user_vocabulary"),
        Index("ix_uservocabularyprogresses_user_next_review", "user_id", "next_review_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vocabulary_id = Column(Integer, ForeignKey("vocabularies.id"), nullable=False, index=True)
    proficiency_level = Column(
        Enum(ProficiencyLevel, name="proficiency_level"),
        nullable=False,
        default=ProficiencyLevel.NEW,
    )
    review_count = Column(Integer, nullable=False, default=0)
    last_reviewed_at = Column(UTCDateTime)
    next_review_at = Column(UTCDateTime)
    custom_notes = Column(Text)

    # Relationships
    user = relationship("User", back_populates="vocabulary_progress")
    vocabulary = relationship("Vocabulary", back_populates="progress")

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Whether the item is scheduled for review at or before ``now``."""
        if self.next_review_at is None:
            return False
        return to_utc(self.next_review_at) <= to_utc(now or utcnow())

    def __repr__(self) -> str:
        return (
            f"<UserVocabularyProgress user={self.user_id} vocabulary={self.vocabulary_id} "
            f"level={self.proficiency_level} reviews={self.review_count}>"
        )
