"""Value types shared by the progress stores."""
import math
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from lingualeap.errors import ValidationError

E = TypeVar("E", bound=Enum)


class ExerciseStatus(str, Enum):
    """Completion state of a user's exercise."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ProficiencyLevel(str, Enum):
    """Caller-assigned mastery category of a vocabulary item."""
    NEW = "NEW"
    LEARNING = "LEARNING"
    REVIEWING = "REVIEWING"
    MASTERED = "MASTERED"


def coerce_enum(enum_cls: Type[E], value: Union[E, str, None], field_name: str) -> E:
    """Accept an enum member or its name, raise ValidationError otherwise."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.upper()]
        except KeyError:
            pass
    allowed = ", ".join(member.name for member in enum_cls)
    raise ValidationError(f"{field_name} must be one of {allowed}, got {value!r}")


@dataclass
class AttemptOutcome:
    """Result of a single exercise attempt."""
    status: ExerciseStatus
    score: Optional[float] = None

    def __post_init__(self) -> None:
        self.status = coerce_enum(ExerciseStatus, self.status, "status")
        if self.score is not None:
            # bool is a Real subclass but never a meaningful score
            if isinstance(self.score, bool) or not isinstance(self.score, Real):
                raise ValidationError(f"score must be a number, got {self.score!r}")
            self.score = float(self.score)
            if not math.isfinite(self.score):
                raise ValidationError(f"score must be finite, got {self.score!r}")

    @classmethod
    def from_value(cls, value: Union["AttemptOutcome", Mapping[str, Any]]) -> "AttemptOutcome":
        """Build an outcome from an AttemptOutcome or a {status, score} mapping."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            if "status" not in value:
                raise ValidationError("outcome requires a status")
            return cls(status=value["status"], score=value.get("score"))
        raise ValidationError(f"outcome must be an AttemptOutcome or a mapping, got {type(value).__name__}")


@dataclass
class ProgressStats:
    """Aggregate view of one user's progress in a store."""
    user_id: int
    counts: Dict[str, int] = field(default_factory=dict)
    total_interactions: int = 0
    average_score: Optional[float] = None

    @property
    def total_records(self) -> int:
        return sum(self.counts.values())
