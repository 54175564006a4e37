"""Configuration settings for the quiz."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
CACHE_DIR = Path(os.getenv("CACHE_DIR", str(DATA_DIR / "cache")))

# Published Google Sheet export, columns A:F only
DEFAULT_VOCABULARY_CSV_URL = (
    "https://docs.google.com/spreadsheets/d/"
    "1N4OnmHhP-wx4E8P8arFImTU6Pl9Tmm6bkx772yUCZe8/export?format=csv&range=A:F"
)

APP_THEMES: List[Dict[str, Any]] = [
    {
        "id": "midnight",
        "name": "Midnight",
        "colors": {"bg": "gray", "card": "gray", "primary": "indigo", "secondary": "purple", "text": "gray"},
    },
    {
        "id": "forest",
        "name": "Forest",
        "colors": {"bg": "slate", "card": "slate", "primary": "emerald", "secondary": "teal", "text": "slate"},
    },
    {
        "id": "ocean",
        "name": "Ocean",
        "colors": {"bg": "sky", "card": "sky", "primary": "blue", "secondary": "cyan", "text": "sky"},
    },
    {
        "id": "sunset",
        "name": "Sunset",
        "colors": {"bg": "stone", "card": "stone", "primary": "rose", "secondary": "orange", "text": "stone"},
    },
]


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        CACHE_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    cache_dir: Path = CACHE_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///jquiz.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class BotSettings:
    """Bot configuration settings."""
    token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")


@dataclass
class VocabularySettings:
    """Vocabulary source settings."""
    csv_url: str = os.getenv("VOCABULARY_CSV_URL", DEFAULT_VOCABULARY_CSV_URL)
    fetch_timeout_seconds: float = float(os.getenv("FETCH_TIMEOUT_SECONDS", "30"))
    stats_load_timeout_seconds: float = float(os.getenv("STATS_LOAD_TIMEOUT_SECONDS", "30"))


@dataclass
class QuizSettings:
    """Review queue and session settings."""
    mastery_threshold: int = int(os.getenv("MASTERY_THRESHOLD", "7"))
    session_size: int = int(os.getenv("SESSION_SIZE", "20"))
    failure_weight: int = int(os.getenv("FAILURE_WEIGHT", "5"))
    new_word_score: int = int(os.getenv("NEW_WORD_SCORE", "2"))
    min_words: int = int(os.getenv("MIN_WORDS", "4"))
    distractor_count: int = int(os.getenv("DISTRACTOR_COUNT", "3"))
    mastered_ratio: float = float(os.getenv("MASTERED_RATIO", "0.8"))


@dataclass
class MonitoringSettings:
    """Metrics exporter settings."""
    port: Optional[int] = int(os.getenv("METRICS_PORT")) if os.getenv("METRICS_PORT") else None


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_bot_settings() -> BotSettings:
    """Get bot settings."""
    return BotSettings()


def get_vocabulary_settings() -> VocabularySettings:
    """Get vocabulary settings."""
    return VocabularySettings()


def get_quiz_settings() -> QuizSettings:
    """Get quiz settings."""
    return QuizSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    bot: BotSettings = field(default_factory=get_bot_settings)
    vocabulary: VocabularySettings = field(default_factory=get_vocabulary_settings)
    quiz: QuizSettings = field(default_factory=get_quiz_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)
    themes: List[Dict[str, Any]] = field(default_factory=lambda: APP_THEMES)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.quiz.mastery_threshold < 1:
            raise ValueError("MASTERY_THRESHOLD must be positive")

        if self.quiz.session_size < 1:
            raise ValueError("SESSION_SIZE must be positive")

        if self.quiz.failure_weight < 1:
            raise ValueError("FAILURE_WEIGHT must be positive")

        if self.quiz.distractor_count < 1:
            raise ValueError("DISTRACTOR_COUNT must be positive")

        if self.quiz.min_words < self.quiz.distractor_count + 1:
            raise ValueError("MIN_WORDS must leave room for the target and its distractors")

        if self.quiz.mastered_ratio <= 0 or self.quiz.mastered_ratio > 1:
            raise ValueError("MASTERED_RATIO must be in (0, 1]")

        if self.vocabulary.fetch_timeout_seconds <= 0:
            raise ValueError("FETCH_TIMEOUT_SECONDS must be positive")

    def validate_bot(self) -> None:
        """Validate settings needed to run the Telegram front end."""
        if not self.bot.token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")


# Create global settings instance
settings = Settings()
settings.validate()
