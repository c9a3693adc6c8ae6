"""Shared plumbing for the per-user progress stores."""
import logging
from typing import Any, ClassVar, Optional, Type

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from lingualeap.errors import NotFound, UniquenessViolation, UnknownReference, ValidationError
from lingualeap.models.base import Base
from lingualeap.monitoring import db_errors, progress_writes, uniqueness_violations

logger = logging.getLogger(__name__)


def require_id(value: Any, field_name: str) -> int:
    """Return ``value`` as an identifier or raise ValidationError."""
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer, got {value!r}")
    if value < 1:
        raise ValidationError(f"{field_name} must be positive, got {value}")
    return value


def resolve_limit(limit: Any, default: int) -> int:
    """Return ``limit``, or ``default`` when it is None; reject anything below 1."""
    if limit is None:
        return default
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValidationError(f"limit must be an integer, got {limit!r}")
    if limit < 1:
        raise ValidationError(f"limit must be at least 1, got {limit}")
    return limit


class ProgressService:
    """Base class for stores keyed by a unique (user_id, item_id) pair.

    Subclasses set ``model`` to the mapped class and ``item_field`` to the
    name of its content foreign key. The backing store's unique index is the
    only guard against duplicate pairs; no locking happens here.
    """

    model: ClassVar[Type[Base]]
    item_field: ClassVar[str]
    store_name: ClassVar[str]

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    @property
    def item_column(self):
        return getattr(self.model, self.item_field)

    def _validate_pair(self, user_id: Any, item_id: Any) -> None:
        require_id(user_id, "user_id")
        require_id(item_id, self.item_field)

    def _pair_query(self, user_id: int, item_id: int) -> Query:
        return self.db.query(self.model).filter(
            self.model.user_id == user_id,
            self.item_column == item_id,
        )

    def _find(self, user_id: int, item_id: int) -> Optional[Any]:
        """Get the record for the pair, or None."""
        return self._pair_query(user_id, item_id).first()

    def _pair_exists(self, user_id: int, item_id: int) -> bool:
        return self.db.query(self._pair_query(user_id, item_id).exists()).scalar()

    def _get_or_raise(self, user_id: int, item_id: int) -> Any:
        record = self._find(user_id, item_id)
        if record is None:
            raise NotFound(
                f"No {self.store_name} progress for user {user_id} and {self.item_field} {item_id}",
                user_id=user_id,
                item_id=item_id,
            )
        return record

    def _insert(self, user_id: int, item_id: int, operation: str = "create", **values: Any) -> Any:
        """Insert a record for the pair, with ``values`` set, in one commit.

        Raises UniquenessViolation when the pair already exists and
        UnknownReference when the user or item row is missing. Callers that
        coalesce a duplicate into an update decide themselves whether the
        duplicate is worth reporting.
        """
        record = self.model(user_id=user_id, **{self.item_field: item_id}, **values)
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if self._pair_exists(user_id, item_id):
                raise UniquenessViolation(
                    f"{self.store_name} progress already exists for user {user_id} "
                    f"and {self.item_field} {item_id}",
                    user_id=user_id,
                    item_id=item_id,
                ) from e
            logger.warning(
                "Rejected %s progress for user %s and %s %s: %s",
                self.store_name, user_id, self.item_field, item_id, e.orig,
            )
            raise UnknownReference(
                f"user {user_id} or {self.item_field} {item_id} does not exist",
                user_id=user_id,
                item_id=item_id,
            ) from e
        except SQLAlchemyError as e:
            self._handle_db_error(e)
            raise

        self.db.refresh(record)
        progress_writes.labels(store=self.store_name, operation=operation).inc()
        logger.info("Created %s progress %s", self.store_name, record.id)
        return record

    def _create(self, user_id: int, item_id: int, **values: Any) -> Any:
        """Raw insert that surfaces a duplicate pair to the caller."""
        try:
            return self._insert(user_id, item_id, **values)
        except UniquenessViolation:
            uniqueness_violations.labels(store=self.store_name).inc()
            logger.warning(
                "Duplicate %s progress for user %s and %s %s",
                self.store_name, user_id, self.item_field, item_id,
            )
            raise

    def _commit(self, record: Any, operation: str) -> Any:
        """Commit pending changes on ``record`` and return it refreshed."""
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self._handle_db_error(e)
            raise
        self.db.refresh(record)
        progress_writes.labels(store=self.store_name, operation=operation).inc()
        return record

    def _handle_db_error(self, error: SQLAlchemyError) -> None:
        self.db.rollback()
        db_errors.labels(error_type=type(error).__name__).inc()
        logger.error("Database error in %s store: %s", self.store_name, error)
