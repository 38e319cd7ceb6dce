"""
Configuration management.

Loads settings from environment variables, .env file and an optional YAML file.
Prefix: MNEMO_ (nested fields use "__", e.g. MNEMO_MEMORY_SEARCH__MODEL)
"""

import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MemorySource = Literal["memory", "conversations"]
CompressionStrategy = Literal[
    "sliding-window", "importance-based", "progressive-summary", "hybrid"
]


class ChunkingConfig(BaseModel):
    tokens: int = Field(default=400, ge=1, description="Target chunk size in tokens")
    overlap: int = Field(default=80, ge=0, description="Tokens carried into the next chunk")


class StoreConfig(BaseModel):
    path: Path | None = Field(default=None, description="Index database path")
    fts_enabled: bool = Field(default=True, description="Create the FTS5 mirror table")


class HybridConfig(BaseModel):
    enabled: bool = True
    vector_weight: float = Field(default=0.7, ge=0)
    text_weight: float = Field(default=0.3, ge=0)
    candidate_multiplier: int = Field(default=4, ge=1)


class QueryConfig(BaseModel):
    max_results: int = Field(default=6, ge=1)
    min_score: float = Field(default=0.35, ge=0, le=1)
    hybrid: HybridConfig = Field(default_factory=HybridConfig)


class SyncConfig(BaseModel):
    on_conversation_start: bool = True


class MemorySearchConfig(BaseModel):
    """Retrieval index settings."""

    enabled: bool = True
    provider: Literal["litellm", "none"] = "litellm"
    model: str = "text-embedding-3-small"
    sources: list[MemorySource] = Field(default_factory=lambda: ["memory"])
    extra_paths: list[str] = Field(default_factory=list)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)


class SleepSettings(BaseModel):
    """Raw sleep section; unset fields fall back during resolution."""

    enabled: bool | None = None
    threshold: float | None = None
    cooldown_minutes: float | None = None
    min_messages_to_sleep: float | None = None
    keep_recent_messages: float | None = None
    compression_strategy: CompressionStrategy | None = None
    prompt: str | None = None
    system_prompt: str | None = None
    reserve_tokens_floor: float | None = None
    soft_threshold_tokens: float | None = None


class MemoryFlushSettings(BaseModel):
    """Legacy memoryFlush section, read only to migrate old configs."""

    enabled: bool | None = None
    soft_threshold_tokens: float | None = None
    prompt: str | None = None
    system_prompt: str | None = None
    reserve_tokens_floor: float | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MNEMO_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Data storage directory")
    agent_id: str = Field(default="default", description="Agent whose memory is managed")
    memory_root: Path | None = Field(
        default=None, description="Workspace holding MEMORY.md and memory/ (default: data_dir/workspace)"
    )

    # Model
    model: str = Field(default="claude-sonnet-4-20250514", description="Agent model id")
    context_tokens: int | None = Field(default=None, description="Context window override")

    # Extraction
    classifier: Literal["keyword", "llm"] = Field(default="keyword")
    classifier_model: str = Field(default="gpt-4o-mini", description="Model for LLM extraction")

    memory_search: MemorySearchConfig = Field(default_factory=MemorySearchConfig)
    sleep: SleepSettings | None = None
    memory_flush: MemoryFlushSettings | None = None

    @property
    def workspace_dir(self) -> Path:
        return self.memory_root or self.data_dir / "workspace"

    @property
    def storage_dir(self) -> Path:
        return self.data_dir / "agents" / self.agent_id

    @property
    def index_path(self) -> Path:
        return self.memory_search.store.path or self.workspace_dir / "memory-index.db"


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_keys(value: Any) -> Any:
    """Recursively convert camelCase mapping keys to snake_case."""
    if isinstance(value, dict):
        return {
            _CAMEL_RE.sub("_", str(k)).lower(): _snake_keys(v) for k, v in value.items()
        }
    if isinstance(value, list):
        return [_snake_keys(v) for v in value]
    return value


def load_settings(config_file: Path | None = None, **overrides: Any) -> Settings:
    """Build settings from an optional YAML file plus environment."""
    data: dict[str, Any] = {}
    if config_file is not None:
        with open(config_file, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
        data = _snake_keys(loaded)
    data.update(overrides)
    return Settings(**data)
