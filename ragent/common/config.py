"""
Configuration Management for the ragent engine

Loads configuration from ~/.ragent/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("ragent.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".ragent"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class LLMConfig:
    """Language Model Service configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    timeout: float = 30.0
    max_tokens: int = 1024


@dataclass
class EmbeddingConfig:
    """Embedding Service configuration"""
    provider: str = "openai"  # openai | google | fastembed
    model: str = "text-embedding-3-large"
    dimension: int = 1536
    cache_size: int = 10000
    timeout: float = 20.0


@dataclass
class CacheConfig:
    """Query-response cache policy"""
    query_ttl_seconds: float = 300.0
    max_queries: int = 1000
    invalidate_on_upsert: bool = True


@dataclass
class EngineConfig:
    """Retrieval and orchestration tunables"""
    max_concurrency: int = 8
    default_top_k: int = 10
    agentic_max_steps: int = 5
    agentic_time_limit: float = 30.0
    max_expansion_rounds: int = 1


@dataclass
class ServerConfig:
    """HTTP boundary configuration"""
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class RagentConfig:
    """Main ragent configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        timeout=float(llm_data.get("timeout", defaults.timeout)),
        max_tokens=int(llm_data.get("max_tokens", defaults.max_tokens)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        provider=embedding_data.get("provider", defaults.provider),
        model=embedding_data.get("model", defaults.model),
        dimension=int(embedding_data.get("dimension", defaults.dimension)),
        cache_size=int(embedding_data.get("cache_size", defaults.cache_size)),
        timeout=float(embedding_data.get("timeout", defaults.timeout)),
    )


def _parse_cache_config(data: dict) -> CacheConfig:
    """Parse cache section from config dict"""
    cache_data = data.get("cache", {})
    defaults = CacheConfig()
    return CacheConfig(
        query_ttl_seconds=float(cache_data.get("query_ttl_seconds", defaults.query_ttl_seconds)),
        max_queries=int(cache_data.get("max_queries", defaults.max_queries)),
        invalidate_on_upsert=bool(cache_data.get("invalidate_on_upsert", defaults.invalidate_on_upsert)),
    )


def _parse_engine_config(data: dict) -> EngineConfig:
    """Parse engine section from config dict"""
    engine_data = data.get("engine", {})
    defaults = EngineConfig()
    return EngineConfig(
        max_concurrency=int(engine_data.get("max_concurrency", defaults.max_concurrency)),
        default_top_k=int(engine_data.get("default_top_k", defaults.default_top_k)),
        agentic_max_steps=int(engine_data.get("agentic_max_steps", defaults.agentic_max_steps)),
        agentic_time_limit=float(engine_data.get("agentic_time_limit", defaults.agentic_time_limit)),
        max_expansion_rounds=int(engine_data.get("max_expansion_rounds", defaults.max_expansion_rounds)),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 8000)),
    )


def load_config() -> RagentConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.ragent/config.json)
    3. Default values
    """
    config = RagentConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.cache = _parse_cache_config(data)
            config.engine = _parse_engine_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # LLM / embedding credentials and providers (track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "RAGENT_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("RAGENT_EMBEDDING_PROVIDER"):
        config.embedding.provider = os.getenv("RAGENT_EMBEDDING_PROVIDER")
    if os.getenv("RAGENT_EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("RAGENT_EMBEDDING_MODEL")
    if os.getenv("RAGENT_EMBEDDING_DIM"):
        config.embedding.dimension = int(os.getenv("RAGENT_EMBEDDING_DIM"))

    if os.getenv("RAGENT_QUERY_CACHE_TTL"):
        config.cache.query_ttl_seconds = float(os.getenv("RAGENT_QUERY_CACHE_TTL"))
    if os.getenv("RAGENT_MAX_CONCURRENCY"):
        config.engine.max_concurrency = int(os.getenv("RAGENT_MAX_CONCURRENCY"))

    if os.getenv("RAGENT_HOST"):
        config.server.host = os.getenv("RAGENT_HOST")
    if os.getenv("RAGENT_PORT"):
        config.server.port = int(os.getenv("RAGENT_PORT"))

    return config


def save_config(config: RagentConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "timeout": config.llm.timeout,
        "max_tokens": config.llm.max_tokens,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "embedding": {
            "provider": config.embedding.provider,
            "model": config.embedding.model,
            "dimension": config.embedding.dimension,
            "cache_size": config.embedding.cache_size,
            "timeout": config.embedding.timeout,
        },
        "cache": {
            "query_ttl_seconds": config.cache.query_ttl_seconds,
            "max_queries": config.cache.max_queries,
            "invalidate_on_upsert": config.cache.invalidate_on_upsert,
        },
        "engine": {
            "max_concurrency": config.engine.max_concurrency,
            "default_top_k": config.engine.default_top_k,
            "agentic_max_steps": config.engine.agentic_max_steps,
            "agentic_time_limit": config.engine.agentic_time_limit,
            "max_expansion_rounds": config.engine.max_expansion_rounds,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
