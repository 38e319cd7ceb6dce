"""Tests for configuration module."""

from pathlib import Path

import pytest

from mnemo.core.config import MemorySearchConfig, Settings, load_settings


def test_default_settings():
    """Settings load with defaults."""
    settings = Settings(_env_file=None)
    assert settings.data_dir == Path("data")
    assert settings.agent_id == "default"
    assert settings.classifier == "keyword"
    assert settings.sleep is None
    assert settings.memory_flush is None


def test_derived_paths():
    """Workspace, storage and index paths derive from data_dir."""
    settings = Settings(data_dir=Path("/tmp/mnemo"), agent_id="alice", _env_file=None)
    assert settings.workspace_dir == Path("/tmp/mnemo/workspace")
    assert settings.storage_dir == Path("/tmp/mnemo/agents/alice")
    assert settings.index_path == Path("/tmp/mnemo/workspace/memory-index.db")


def test_explicit_memory_root_and_store_path():
    settings = Settings(
        memory_root=Path("/srv/notes"),
        memory_search={"store": {"path": "/var/index.db"}},
        _env_file=None,
    )
    assert settings.workspace_dir == Path("/srv/notes")
    assert settings.index_path == Path("/var/index.db")


def test_memory_search_defaults():
    config = MemorySearchConfig()
    assert config.enabled is True
    assert config.sources == ["memory"]
    assert config.chunking.tokens == 400
    assert config.chunking.overlap == 80
    assert config.query.max_results == 6
    assert config.query.min_score == 0.35
    assert config.query.hybrid.vector_weight == 0.7
    assert config.query.hybrid.text_weight == 0.3
    assert config.query.hybrid.candidate_multiplier == 4


def test_load_settings_from_yaml(tmp_path: Path):
    """camelCase YAML keys map onto snake_case settings."""
    config_file = tmp_path / "mnemo.yaml"
    config_file.write_text(
        """
agentId: bob
memorySearch:
  extraPaths: [notes]
  sources: [memory, conversations]
  query:
    maxResults: 3
    hybrid:
      vectorWeight: 0.5
sleep:
  cooldownMinutes: 2
  compressionStrategy: sliding-window
memoryFlush:
  softThresholdTokens: 1000
""",
        encoding="utf-8",
    )

    settings = load_settings(config_file, _env_file=None)

    assert settings.agent_id == "bob"
    assert settings.memory_search.extra_paths == ["notes"]
    assert settings.memory_search.sources == ["memory", "conversations"]
    assert settings.memory_search.query.max_results == 3
    assert settings.memory_search.query.hybrid.vector_weight == 0.5
    assert settings.memory_search.query.hybrid.text_weight == 0.3
    assert settings.sleep.cooldown_minutes == 2
    assert settings.sleep.compression_strategy == "sliding-window"
    assert settings.memory_flush.soft_threshold_tokens == 1000


def test_load_settings_empty_file(tmp_path: Path):
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("", encoding="utf-8")
    settings = load_settings(config_file, _env_file=None)
    assert settings.agent_id == "default"


def test_load_settings_rejects_non_mapping(tmp_path: Path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config_file, _env_file=None)


def test_env_override(monkeypatch):
    """Nested fields are settable through MNEMO_ env vars."""
    monkeypatch.setenv("MNEMO_AGENT_ID", "env-agent")
    monkeypatch.setenv("MNEMO_MEMORY_SEARCH__MODEL", "ollama/nomic-embed-text")
    settings = Settings(_env_file=None)
    assert settings.agent_id == "env-agent"
    assert settings.memory_search.model == "ollama/nomic-embed-text"
