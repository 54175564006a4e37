"""Database models for the quiz."""
from sqlalchemy import JSON, Column, Integer, String

from jquiz.models.base import Base, TimestampMixin


class UserDocument(Base, TimestampMixin):
    """Per-user document holding vocabulary counters and settings.

    ``data`` has the shape ``{"vocabulary": {word: {"s": int, "f": int}},
    "settings": {"themeIndex": int}}``; either sub-map may be absent and any
    other top-level key is kept as-is.
    """

    __tablename__ = "user_documents"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
