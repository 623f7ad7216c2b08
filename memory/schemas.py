"""SQLAlchemy schemas for persistent memory tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from memory.types.memory import utc_now

MANIFEST_KEY = "index"
GRAPH_KEY = "memory_graph"
MANIFEST_VERSION = "1.0"
GRAPH_VERSION = "1.0"


class Base(DeclarativeBase):
    """Declarative base."""


class MemoryRecord(Base):
    """One serialized memory per row, keyed by memory id."""

    __tablename__ = "memory_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class ManifestRecord(Base):
    """Index of known memory ids."""

    __tablename__ = "memory_manifest"

    key: Mapped[str] = mapped_column(String(32), primary_key=True, default=MANIFEST_KEY)
    version: Mapped[str] = mapped_column(String(16), default=MANIFEST_VERSION)
    memory_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    total_memories: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class GraphDocumentRecord(Base):
    """Whole relation graph stored as a single document."""

    __tablename__ = "graph_documents"

    key: Mapped[str] = mapped_column(String(32), primary_key=True, default=GRAPH_KEY)
    version: Mapped[str] = mapped_column(String(16), default=GRAPH_VERSION)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
