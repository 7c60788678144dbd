"""
Configuration Management for Dionysus

Loads configuration from ~/.dionysus/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger("dionysus.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".dionysus"
CONFIG_PATH = CONFIG_DIR / "config.json"
DATA_DIR = CONFIG_DIR / "data"
UPLOADS_DIR = CONFIG_DIR / "uploads"
REPOS_DIR = CONFIG_DIR / "repos"

DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{DATA_DIR / 'dionysus.sqlite3'}"
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


@dataclass
class DatabaseConfig:
    """Persistent store configuration"""
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False


@dataclass
class GitHubConfig:
    """Remote history provider configuration"""
    token: str = ""
    api_url: str = "https://api.github.com"
    commit_limit: int = 15
    timeout: float = 15.0


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "femb"  # fastembed (on-device) or "google"
    model: str = DEFAULT_EMBEDDING_MODEL


@dataclass
class LLMConfig:
    """Shared LLM provider configuration"""
    provider: str = "google"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.5-flash"
    timeout: float = 30.0


@dataclass
class RetryConfig:
    """Retry policy for transient store/provider failures"""
    max_retries: int = 3
    delay_seconds: float = 2.0  # fixed, not exponential


@dataclass
class RetrieverConfig:
    """Retrieval and answer generation configuration"""
    topk: int = 5
    excerpt_chars: int = 1500
    max_file_bytes: int = 200_000
    repos_dir: str = str(REPOS_DIR)  # checkouts the HTTP API may index


@dataclass
class MeetingsConfig:
    """Meeting upload and transcription configuration"""
    uploads_dir: str = str(UPLOADS_DIR)
    transcription_model: str = "whisper-1"
    poll_retries: int = 3
    poll_initial_delay: float = 1.0


@dataclass
class ServerConfig:
    """HTTP facade configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False


@dataclass
class DionysusConfig:
    """Main Dionysus configuration"""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    meetings: MeetingsConfig = field(default_factory=MeetingsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_database_config(data: dict) -> DatabaseConfig:
    """Parse database section from config dict"""
    db_data = data.get("database", {})
    return DatabaseConfig(
        url=db_data.get("url", DEFAULT_DATABASE_URL),
        echo=db_data.get("echo", False),
    )


def _parse_github_config(data: dict) -> GitHubConfig:
    """Parse github section from config dict"""
    gh_data = data.get("github", {})
    return GitHubConfig(
        token=gh_data.get("token", ""),
        api_url=gh_data.get("api_url", "https://api.github.com"),
        commit_limit=gh_data.get("commit_limit", 15),
        timeout=gh_data.get("timeout", 15.0),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "femb"),
        model=embedding_data.get("model", DEFAULT_EMBEDDING_MODEL),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "google"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.5-flash"),
        timeout=llm_data.get("timeout", 30.0),
    )


def _parse_retry_config(data: dict) -> RetryConfig:
    """Parse retry section from config dict"""
    retry_data = data.get("retry", {})
    return RetryConfig(
        max_retries=retry_data.get("max_retries", 3),
        delay_seconds=retry_data.get("delay_seconds", 2.0),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        topk=retriever_data.get("topk", 5),
        excerpt_chars=retriever_data.get("excerpt_chars", 1500),
        max_file_bytes=retriever_data.get("max_file_bytes", 200_000),
        repos_dir=retriever_data.get("repos_dir", str(REPOS_DIR)),
    )


def _parse_meetings_config(data: dict) -> MeetingsConfig:
    """Parse meetings section from config dict"""
    meetings_data = data.get("meetings", {})
    return MeetingsConfig(
        uploads_dir=meetings_data.get("uploads_dir", str(UPLOADS_DIR)),
        transcription_model=meetings_data.get("transcription_model", "whisper-1"),
        poll_retries=meetings_data.get("poll_retries", 3),
        poll_initial_delay=meetings_data.get("poll_initial_delay", 1.0),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 8000),
        debug=server_data.get("debug", False),
    )


def load_config() -> DionysusConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (a local .env file is read first)
    2. Config file (~/.dionysus/config.json)
    3. Default values
    """
    load_dotenv()
    config = DionysusConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.database = _parse_database_config(data)
            config.github = _parse_github_config(data)
            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.retry = _parse_retry_config(data)
            config.retriever = _parse_retriever_config(data)
            config.meetings = _parse_meetings_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("DATABASE_URL"):
        config.database.url = os.getenv("DATABASE_URL")
    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")
    if os.getenv("DIONYSUS_PORT"):
        config.server.port = int(os.getenv("DIONYSUS_PORT"))
    if os.getenv("DIONYSUS_DEBUG"):
        config.server.debug = os.getenv("DIONYSUS_DEBUG").lower() in ("1", "true", "yes")
    if os.getenv("DIONYSUS_TOPK"):
        config.retriever.topk = int(os.getenv("DIONYSUS_TOPK"))
    if os.getenv("DIONYSUS_REPOS_DIR"):
        config.retriever.repos_dir = os.getenv("DIONYSUS_REPOS_DIR")

    if os.getenv("GITHUB_TOKEN"):
        config.github.token = os.getenv("GITHUB_TOKEN")
        config._env_sourced_keys.add("github_token")

    # LLM env var overrides (target config.llm, track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "DIONYSUS_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: DionysusConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as empty
    strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _llm_api_key_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
    }
    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "timeout": config.llm.timeout,
    }
    for key in _llm_api_key_fields:
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "database": {
            "url": config.database.url,
            "echo": config.database.echo,
        },
        "github": {
            "token": "" if "github_token" in env_sourced else config.github.token,
            "api_url": config.github.api_url,
            "commit_limit": config.github.commit_limit,
            "timeout": config.github.timeout,
        },
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
        },
        "llm": llm_section,
        "retry": {
            "max_retries": config.retry.max_retries,
            "delay_seconds": config.retry.delay_seconds,
        },
        "retriever": {
            "topk": config.retriever.topk,
            "excerpt_chars": config.retriever.excerpt_chars,
            "max_file_bytes": config.retriever.max_file_bytes,
            "repos_dir": config.retriever.repos_dir,
        },
        "meetings": {
            "uploads_dir": config.meetings.uploads_dir,
            "transcription_model": config.meetings.transcription_model,
            "poll_retries": config.meetings.poll_retries,
            "poll_initial_delay": config.meetings.poll_initial_delay,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "debug": config.server.debug,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    REPOS_DIR.mkdir(parents=True, exist_ok=True)
