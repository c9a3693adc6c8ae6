"""Startup wiring for the progress stores."""
from typing import Any, Dict, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from lingualeap.config import settings
from lingualeap.logging_config import get_logger
from lingualeap.models.base import create_db_engine, init_db
from lingualeap.monitoring import start_monitoring
from lingualeap.services.exercise_progress_service import ExerciseProgressService
from lingualeap.services.vocabulary_progress_service import VocabularyProgressService


class DataLayer:
    """Owns the engine and session and hands out the progress stores.

    Built once at startup; consumers receive ``exercise_progress`` and
    ``vocabulary_progress`` by reference instead of looking models up in a
    global registry.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        """Initialize the data layer."""
        self.database_url = database_url or settings.database.url
        self.engine: Optional[Engine] = engine
        self.db: Optional[Session] = None
        self.exercise_progress: Optional[ExerciseProgressService] = None
        self.vocabulary_progress: Optional[VocabularyProgressService] = None
        self.running = False
        self.logger = get_logger(__name__)

    def start(self) -> None:
        """Create the schema and the stores."""
        if self.running:
            return

        try:
            if self.engine is None:
                self.engine = create_db_engine(self.database_url, settings.database.echo)
            init_db(self.engine)
            self.db = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)()
            self.logger.info("Database initialized")

            self.exercise_progress = ExerciseProgressService(self.db)
            self.vocabulary_progress = VocabularyProgressService(self.db)

            if settings.monitoring.enabled:
                start_monitoring(settings.monitoring.port)
                self.logger.info("Metrics exposed on port %s", settings.monitoring.port)

            self.running = True
        except Exception as e:
            self.logger.error("Failed to start data layer: %s", str(e))
            self.stop()
            raise

    def stop(self) -> None:
        """Close the session and release pooled connections."""
        if self.db is not None:
            self.db.close()
            self.db = None
        if self.engine is not None:
            self.engine.dispose()
        self.exercise_progress = None
        self.vocabulary_progress = None
        self.running = False
        self.logger.info("Data layer stopped")

    def status(self) -> Dict[str, Any]:
        """Describe the database connection and its tables."""
        if self.engine is None:
            return {"status": "disconnected", "tables": []}
        return {
            "status": "connected" if self.running else "disconnected",
            "dialect": self.engine.dialect.name,
            "database": self.engine.url.database,
            "tables": sorted(inspect(self.engine).get_table_names()),
        }

    def __enter__(self) -> "DataLayer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
