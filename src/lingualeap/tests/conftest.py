"""Test configuration."""
import os
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path, override=True)
os.environ["DATABASE_URL"] = "sqlite://"

# Import after environment setup
from faker import Faker
from sqlalchemy.orm import Session

from lingualeap.models.base import Base, SessionLocal, engine, init_db
from lingualeap.models.models import Exercise, User, Vocabulary

fake = Faker()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db: Session):
    """Factory for persisted users."""
    def _make_user() -> User:
        user = User(
            username=fake.unique.user_name()[:30],
            email=fake.unique.email(),
            display_name=fake.name()[:50],
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_exercise(db: Session):
    """Factory for persisted exercises."""
    def _make_exercise() -> Exercise:
        exercise = Exercise(
            title=fake.sentence(nb_words=3),
            instruction=fake.sentence(),
            type="multiple_choice",
        )
        db.add(exercise)
        db.commit()
        db.refresh(exercise)
        return exercise
    return _make_exercise


@pytest.fixture
def make_vocabulary(db: Session):
    """Factory for persisted vocabulary items."""
    def _make_vocabulary() -> Vocabulary:
        vocabulary = Vocabulary(
            word=fake.unique.word(),
            meaning=fake.word(),
            pronunciation="/test/",
        )
        db.add(vocabulary)
        db.commit()
        db.refresh(vocabulary)
        return vocabulary
    return _make_vocabulary


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def exercise(make_exercise) -> Exercise:
    return make_exercise()


@pytest.fixture
def vocabulary(make_vocabulary) -> Vocabulary:
    return make_vocabulary()
