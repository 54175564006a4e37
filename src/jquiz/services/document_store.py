"""Durable per-user document store."""
import asyncio
import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jquiz.models.base import SessionLocal
from jquiz.models.models import UserDocument

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The document store could not complete an operation."""


class PathNotFoundError(StoreError):
    """A targeted write addressed a slot whose parent does not exist."""

    def __init__(self, user_id: str, path: Sequence[str]):
        self.user_id = user_id
        self.path = tuple(path)
        super().__init__(f"Path {'.'.join(self.path)} does not exist for user {user_id}")


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``update`` merged in recursively.

    Nested dicts are merged key by key; any other value in ``update`` replaces
    the one in ``base``. Neither argument is modified.
    """
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def nest(path: Sequence[str], value: Any) -> Dict[str, Any]:
    """Build ``{path[0]: {path[1]: ... value}}``."""
    result: Any = value
    for key in reversed(path):
        result = {key: result}
    return result


class DocumentStore(ABC):
    """Map of user id to a JSON-like document."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the user's document, or None if it does not exist."""

    @abstractmethod
    async def update_field(self, user_id: str, path: Sequence[str], value: Any) -> None:
        """Set the slot at ``path`` and nothing else.

        Raises PathNotFoundError if the document or any parent map along the
        path is missing.
        """

    @abstractmethod
    async def merge(self, user_id: str, data: Dict[str, Any]) -> None:
        """Merge ``data`` into the document, creating it if needed."""


class SqlDocumentStore(DocumentStore):
    """Document store backed by the ``user_documents`` table.

    Session work runs in a worker thread so a slow database never blocks the
    event loop and callers can bound it with ``asyncio.wait_for``.
    """

    # Read-modify-write of a document must not interleave
    _write_lock = threading.Lock()

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        """Initialize the store with a session factory."""
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Database error: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _find(db: Session, user_id: str) -> Optional[UserDocument]:
        return db.query(UserDocument).filter(UserDocument.user_id == user_id).first()

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, user_id)

    async def update_field(self, user_id: str, path: Sequence[str], value: Any) -> None:
        if not path:
            raise ValueError("path must not be empty")
        await asyncio.to_thread(self._update_field, user_id, tuple(path), copy.deepcopy(value))

    async def merge(self, user_id: str, data: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._merge, user_id, copy.deepcopy(data))

    def _get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._session() as db:
            document = self._find(db, user_id)
            if not document:
                return None
            return copy.deepcopy(document.data or {})

    def _update_field(self, user_id: str, path: Sequence[str], value: Any) -> None:
        with self._write_lock, self._session() as db:
            document = self._find(db, user_id)
            if not document:
                raise PathNotFoundError(user_id, path)

            data = copy.deepcopy(document.data or {})
            node = data
            for key in path[:-1]:
                child = node.get(key)
                if not isinstance(child, dict):
                    raise PathNotFoundError(user_id, path)
                node = child
            node[path[-1]] = value

            # JSON columns only notice reassignment
            document.data = data
            logger.debug("Updated %s for user %s", ".".join(path), user_id)

    def _merge(self, user_id: str, data: Dict[str, Any]) -> None:
        with self._write_lock, self._session() as db:
            document = self._find(db, user_id)
            if not document:
                db.add(UserDocument(user_id=user_id, data=data))
                logger.info("Created document for user %s", user_id)
                return

            document.data = deep_merge(document.data or {}, data)
            logger.debug("Merged %s into document of user %s", sorted(data), user_id)
