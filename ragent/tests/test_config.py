"""Tests for configuration loading and saving."""

import json
import os
import pytest
from unittest.mock import patch


class TestDefaults:
    def test_section_defaults(self):
        from ragent.common.config import RagentConfig
        cfg = RagentConfig()
        assert cfg.llm.provider == "openai"
        assert cfg.embedding.model == "text-embedding-3-large"
        assert cfg.embedding.dimension == 1536
        assert cfg.cache.query_ttl_seconds == 300.0
        assert cfg.cache.invalidate_on_upsert is True
        assert cfg.engine.agentic_max_steps == 5
        assert cfg.engine.max_expansion_rounds == 1

    def test_missing_file_gives_defaults(self, tmp_path):
        from ragent.common.config import load_config
        with patch("ragent.common.config.CONFIG_PATH", tmp_path / "absent.json"), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()
        assert cfg.server.port == 8000
        assert cfg.llm.openai_api_key == ""


class TestLoadConfig:
    def test_load_sections_from_file(self, tmp_path):
        from ragent.common.config import load_config
        config_data = {
            "llm": {"provider": "anthropic", "anthropic_api_key": "sk-file"},
            "embedding": {"provider": "fastembed", "model": "BAAI/bge-small-en-v1.5", "dimension": 384},
            "cache": {"query_ttl_seconds": 60, "max_queries": 50},
            "engine": {"max_concurrency": 2, "agentic_time_limit": 10},
            "server": {"port": 9001},
        }
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(config_data))

        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.llm.provider == "anthropic"
        assert cfg.llm.anthropic_api_key == "sk-file"
        assert cfg.embedding.dimension == 384
        assert cfg.cache.query_ttl_seconds == 60.0
        assert cfg.cache.max_queries == 50
        assert cfg.engine.max_concurrency == 2
        assert cfg.engine.agentic_time_limit == 10.0
        assert cfg.server.port == 9001

    def test_corrupt_file_logs_warning(self, tmp_path, caplog):
        import logging
        from ragent.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True), \
             caplog.at_level(logging.WARNING, logger="ragent.common.config"):
            cfg = load_config()

        assert cfg.llm.provider == "openai"
        assert "Failed to load config" in caplog.text

    def test_env_var_overrides_file(self, tmp_path):
        from ragent.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"llm": {"provider": "anthropic"}}))

        env = {
            "OPENAI_API_KEY": "sk-env",
            "RAGENT_LLM_PROVIDER": "openai",
            "RAGENT_EMBEDDING_DIM": "768",
            "RAGENT_QUERY_CACHE_TTL": "30",
            "RAGENT_PORT": "8080",
        }
        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=True):
            cfg = load_config()

        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_api_key == "sk-env"
        assert cfg.embedding.dimension == 768
        assert cfg.cache.query_ttl_seconds == 30.0
        assert cfg.server.port == 8080

    def test_gemini_api_key_env_var(self, tmp_path):
        """GEMINI_API_KEY should also set google_api_key."""
        from ragent.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {"GEMINI_API_KEY": "gem-key"}, clear=True):
            cfg = load_config()

        assert cfg.llm.google_api_key == "gem-key"


class TestSaveConfig:
    def test_save_config_omits_env_keys(self, tmp_path):
        from ragent.common.config import load_config, save_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        env = {"ANTHROPIC_API_KEY": "sk-from-env"}
        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch("ragent.common.config.CONFIG_DIR", tmp_path), \
             patch.dict(os.environ, env, clear=True):
            cfg = load_config()
            save_config(cfg)

        saved = json.loads(config_file.read_text())
        assert saved["llm"]["anthropic_api_key"] == ""

    def test_save_config_round_trip(self, tmp_path):
        from ragent.common.config import load_config, save_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "llm": {"provider": "google", "google_api_key": "g-file"},
            "engine": {"max_expansion_rounds": 2},
        }))

        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch("ragent.common.config.CONFIG_DIR", tmp_path), \
             patch.dict(os.environ, {}, clear=True):
            save_config(load_config())
            cfg = load_config()

        assert cfg.llm.provider == "google"
        assert cfg.llm.google_api_key == "g-file"
        assert cfg.engine.max_expansion_rounds == 2

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_saved_file_is_private(self, tmp_path):
        from ragent.common.config import RagentConfig, save_config
        config_file = tmp_path / "config.json"
        with patch("ragent.common.config.CONFIG_PATH", config_file), \
             patch("ragent.common.config.CONFIG_DIR", tmp_path):
            save_config(RagentConfig())
        assert (config_file.stat().st_mode & 0o777) == 0o600
