"""Configuration loading for the memory engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    """Memory store settings."""

    cache_size: int = Field(default=1000, gt=0)


class EmbeddingConfig(BaseModel):
    """Embedding provider settings."""

    provider: str = "hashing"
    model: str = "all-MiniLM-L6-v2"
    dimensions: int = Field(default=384, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0.0)


class InjectionConfig(BaseModel):
    """Context injection settings."""

    max_memories: int = 5
    min_similarity: float = 0.2
    max_tokens: int = 2000
    timeout_seconds: float = 15.0


class ActiveLearningConfig(BaseModel):
    """Clarifying-question throttling."""

    low_confidence_threshold: float = 0.4
    max_questions_per_session: int = 3
    cooldown_minutes: float = 30.0


class CatcherConfig(BaseModel):
    """Background transcript extraction settings."""

    interval_seconds: float = 15 * 60
    deduplication_threshold: float = 0.9
    min_confidence: float = 0.5
    generate_embeddings: bool = True
    max_entries_per_session: int = 1000


class AbstractionConfig(BaseModel):
    """Consolidation thresholds."""

    similarity_threshold: float = 0.75
    min_cluster_size: int = 3


class MaintenanceConfig(BaseModel):
    """Stale cleanup thresholds."""

    max_age_days: float = 90.0
    min_confidence: float = 0.1


class MemoryConfig(BaseModel):
    """Typed view over the merged YAML configuration."""

    enable_embeddings: bool = True
    enable_auto_extraction: bool = True
    preload_embedding_model: bool = False
    store: StoreConfig = Field(default_factory=StoreConfig)
    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    injection: InjectionConfig = Field(default_factory=InjectionConfig)
    active_learning: ActiveLearningConfig = Field(default_factory=ActiveLearningConfig)
    catcher: CatcherConfig = Field(default_factory=CatcherConfig)
    abstraction: AbstractionConfig = Field(default_factory=AbstractionConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryConfig:
        """Build from a raw mapping, reading the `memory` section if present."""
        section = data.get("memory", data)
        if not isinstance(section, dict):
            raise ValueError("memory config section must be a mapping.")
        return cls.model_validate(section)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_runtime_dirs(root: Path, config: dict[str, Any]) -> dict[str, Path]:
    """Ensure the storage directory exists and return resolved paths."""
    paths_cfg = config.get("paths", {})
    db_path = (root / paths_cfg.get("db_path", "storage/memories.db")).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return {"db_path": db_path}


def load_effective_config(root: Path) -> dict[str, Any]:
    """Load `config/memory.yaml` with an optional `config/local.yaml` override."""
    config_dir = root / "config"
    default_cfg = load_yaml(config_dir / "memory.yaml")
    local_cfg = load_yaml(config_dir / "local.yaml")
    return merge_dicts(default_cfg, local_cfg)
