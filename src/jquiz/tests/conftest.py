"""Test configuration."""
import os
import random
import tempfile
from pathlib import Path
from typing import Callable, Generator, List

import pytest
from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="jquiz-test-")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from jquiz.config import ensure_directories
from jquiz.models.base import init_db
from jquiz.models.quiz_models import WordRecord
from jquiz.services.document_store import SqlDocumentStore
from jquiz.services.local_cache import LocalCache

fake = Faker()


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    # Ensure test directories exist
    ensure_directories()

    yield


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def document_store(session_factory) -> SqlDocumentStore:
    """Document store over the test database."""
    return SqlDocumentStore(session_factory)


@pytest.fixture
def cache(tmp_path) -> LocalCache:
    """Local cache in a temporary directory."""
    return LocalCache(tmp_path / "cache")


@pytest.fixture
def make_word() -> Callable[..., WordRecord]:
    """Factory for vocabulary entries with unique words."""
    counter = iter(range(1_000_000))

    def _make(word: str = None, meaning: str = None) -> WordRecord:
        return WordRecord(
            word=word or f"{fake.word()}-{next(counter)}",
            meaning=meaning or fake.sentence(nb_words=3),
            kana=fake.lexify("????"),
            romaji=fake.lexify("????"),
            tone="",
            category=fake.random_element(["noun", "verb", "adjective"]),
        )

    return _make


@pytest.fixture
def words(make_word) -> List[WordRecord]:
    """A small vocabulary."""
    return [make_word() for _ in range(10)]


@pytest.fixture
def rng() -> random.Random:
    """Seeded random generator."""
    return random.Random(1234)
