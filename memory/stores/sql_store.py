"""SQLite SQLAlchemy store wrapper."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker

from memory.schemas import (
    GRAPH_KEY,
    GRAPH_VERSION,
    MANIFEST_KEY,
    MANIFEST_VERSION,
    Base,
    GraphDocumentRecord,
    ManifestRecord,
    MemoryRecord,
)
from memory.types.memory import utc_now


class SQLStore:
    """Provides SQLAlchemy session management for SQLite persistence.

    All methods are blocking; async callers run them via `asyncio.to_thread`.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(
            f"sqlite+pysqlite:///{self.db_path}",
            future=True,
            connect_args={"check_same_thread": False},
        )
        self._session_factory = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)

    def create_all(self) -> None:
        """Create all schema tables if missing."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager that commits on success and rolls back on error."""
        sess = self._session_factory()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    # Memory records

    def read_memory(self, memory_id: str) -> dict[str, Any] | None:
        with self.session() as sess:
            row = sess.get(MemoryRecord, memory_id)
            return dict(row.payload) if row is not None else None

    def write_memory(self, memory_id: str, kind: str, payload: dict[str, Any]) -> None:
        with self.session() as sess:
            row = sess.get(MemoryRecord, memory_id)
            if row is None:
                sess.add(MemoryRecord(id=memory_id, kind=kind, payload=payload))
            else:
                row.kind = kind
                row.payload = payload
                row.updated_at = utc_now()

    def delete_memory(self, memory_id: str) -> None:
        with self.session() as sess:
            sess.execute(delete(MemoryRecord).where(MemoryRecord.id == memory_id))

    # Manifest

    def read_manifest(self) -> list[str] | None:
        """Return the ordered id list, or None when no manifest exists yet."""
        with self.session() as sess:
            row = sess.get(ManifestRecord, MANIFEST_KEY)
            return list(row.memory_ids) if row is not None else None

    def write_manifest(self, memory_ids: list[str]) -> None:
        with self.session() as sess:
            row = sess.get(ManifestRecord, MANIFEST_KEY)
            if row is None:
                row = ManifestRecord(key=MANIFEST_KEY, version=MANIFEST_VERSION)
                sess.add(row)
            row.memory_ids = list(memory_ids)
            row.total_memories = len(memory_ids)
            row.last_updated = utc_now()

    # Graph document

    def read_graph(self) -> dict[str, Any] | None:
        with self.session() as sess:
            row = sess.get(GraphDocumentRecord, GRAPH_KEY)
            return dict(row.payload) if row is not None else None

    def write_graph(self, payload: dict[str, Any]) -> None:
        with self.session() as sess:
            row = sess.get(GraphDocumentRecord, GRAPH_KEY)
            if row is None:
                row = GraphDocumentRecord(key=GRAPH_KEY, version=GRAPH_VERSION)
                sess.add(row)
            row.payload = payload
            row.last_updated = utc_now()
