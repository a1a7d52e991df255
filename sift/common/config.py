"""
Configuration Management for Sift

Loads configuration from ~/.sift/config.json and environment variables.
Components receive their section at construction time; nothing below the
entry points reads the environment directly.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from .errors import ConfigurationError

logger = logging.getLogger("sift.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".sift"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
DATA_DIR = CONFIG_DIR / "data"
RECORDS_PATH = DATA_DIR / "records.json"
IMAGES_PATH = DATA_DIR / "images.json"
JOBS_PATH = DATA_DIR / "jobs.json"
MEDIA_DIR = DATA_DIR / "media"


@dataclass
class LLMConfig:
    """Completion provider configuration shared by extraction, synthesis and vision"""
    extraction_provider: str = "google"
    synthesis_provider: str = "anthropic"
    vision_provider: str = "google"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    image_provider: str = "openai"
    openai_image_model: str = "gpt-image-1"
    timeout: float = 60.0


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    provider: str = "google"  # google, openai, fastembed
    model: str = "models/text-embedding-004"
    dimension: int = 768


@dataclass
class FetcherConfig:
    """Source fetcher thresholds"""
    min_content_length: int = 500
    max_stored_length: int = 50000
    timeout: float = 30.0
    user_agent: str = "Mozilla/5.0 (compatible; SiftBot/0.1)"


@dataclass
class ExtractorConfig:
    """Structured extraction budgets"""
    max_input_chars: int = 15000
    max_url_length: int = 200
    max_output_tokens: int = 2000
    min_finding_length: int = 15


@dataclass
class RetrieverConfig:
    """Hybrid retrieval and synthesis parameters"""
    rrf_k: int = 60
    semantic_weight: float = 1.0
    full_text_weight: float = 1.0
    standard_count: int = 3
    standard_threshold: float = 0.3
    deep_count: int = 30
    deep_threshold: float = 0.2
    search_count: int = 20
    search_threshold: float = 0.5
    high_relevance_threshold: float = 0.5
    excerpt_chars: int = 2000
    max_quotes: int = 3
    max_tokens: int = 2048


@dataclass
class DistributionConfig:
    """Team messaging delivery configuration"""
    slack_webhook_url: str = ""
    timeout: float = 10.0
    newsletter_max_items: int = 10


@dataclass
class StoreConfig:
    """Persistence locations"""
    backend: str = "file"  # file, memory
    records_path: str = str(RECORDS_PATH)
    images_path: str = str(IMAGES_PATH)
    jobs_path: str = str(JOBS_PATH)
    media_path: str = str(MEDIA_DIR)


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 8090
    resume_jobs: bool = True
    public_base_url: str = ""  # prefix for generated image links, e.g. https://sift.example.com


@dataclass
class SiftConfig:
    """Main Sift configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    distribution: DistributionConfig = field(default_factory=DistributionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_section(cls, data: dict, key: str):
    """Build a dataclass section, ignoring unknown keys and keeping defaults for missing ones"""
    section = data.get(key) or {}
    defaults = cls()
    kwargs = {}
    for name in defaults.__dataclass_fields__:
        if name in section and section[name] is not None:
            kwargs[name] = section[name]
    return cls(**kwargs)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section; a single ``provider`` key sets every role at once"""
    llm_data = data.get("llm") or {}
    config = _parse_section(LLMConfig, data, "llm")
    provider = llm_data.get("provider")
    if provider:
        for role in ("extraction_provider", "synthesis_provider", "vision_provider"):
            if role not in llm_data:
                setattr(config, role, provider)
    return config


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    return _clamp_rrf_k(_parse_section(RetrieverConfig, data, "retriever"))


def _clamp_rrf_k(config: RetrieverConfig) -> RetrieverConfig:
    if config.rrf_k <= 0:
        logger.warning("retriever.rrf_k must be positive, using 60 (got %s)", config.rrf_k)
        config.rrf_k = 60
    return config


def load_config(path: Path = None) -> SiftConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.sift/config.json)
    3. Default values
    """
    config = SiftConfig()
    path = Path(path) if path else CONFIG_PATH

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_section(EmbeddingConfig, data, "embedding")
            config.fetcher = _parse_section(FetcherConfig, data, "fetcher")
            config.extractor = _parse_section(ExtractorConfig, data, "extractor")
            config.retriever = _parse_retriever_config(data)
            config.distribution = _parse_section(DistributionConfig, data, "distribution")
            config.store = _parse_section(StoreConfig, data, "store")
            config.server = _parse_section(ServerConfig, data, "server")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", path, e)

    # LLM env var overrides (track env-sourced keys so they are never written back)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "SIFT_EXTRACTION_PROVIDER": "extraction_provider",
        "SIFT_SYNTHESIS_PROVIDER": "synthesis_provider",
        "SIFT_VISION_PROVIDER": "vision_provider",
        "SIFT_IMAGE_PROVIDER": "image_provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("SIFT_EMBEDDING_PROVIDER"):
        config.embedding.provider = os.getenv("SIFT_EMBEDDING_PROVIDER")
    if os.getenv("SIFT_EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("SIFT_EMBEDDING_MODEL")
    if os.getenv("SIFT_EMBEDDING_DIMENSION"):
        config.embedding.dimension = int(os.getenv("SIFT_EMBEDDING_DIMENSION"))

    if os.getenv("SLACK_WEBHOOK_URL"):
        config.distribution.slack_webhook_url = os.getenv("SLACK_WEBHOOK_URL")
        config._env_sourced_keys.add("slack_webhook_url")

    if os.getenv("SIFT_RRF_K"):
        config.retriever.rrf_k = int(os.getenv("SIFT_RRF_K"))
        _clamp_rrf_k(config.retriever)
    if os.getenv("SIFT_STORE_BACKEND"):
        config.store.backend = os.getenv("SIFT_STORE_BACKEND")
    if os.getenv("SIFT_PORT"):
        config.server.port = int(os.getenv("SIFT_PORT"))
    if os.getenv("SIFT_PUBLIC_BASE_URL"):
        config.server.public_base_url = os.getenv("SIFT_PUBLIC_BASE_URL")

    return config


def _provider_key(config: SiftConfig, provider: str) -> str:
    return {
        "anthropic": config.llm.anthropic_api_key,
        "openai": config.llm.openai_api_key,
        "google": config.llm.google_api_key,
    }.get(provider, "")


def validate_config(config: SiftConfig) -> None:
    """Fail fast on missing credentials.

    Raises:
        ConfigurationError: listing every missing credential at once
    """
    missing = []
    for role in ("extraction_provider", "synthesis_provider", "vision_provider"):
        provider = getattr(config.llm, role)
        if provider not in ("anthropic", "openai", "google"):
            missing.append(f"llm.{role}: unsupported provider '{provider}'")
        elif not _provider_key(config, provider):
            missing.append(f"llm.{role}: no API key for '{provider}'")

    if config.embedding.provider in ("google", "openai"):
        if not _provider_key(config, config.embedding.provider):
            missing.append(f"embedding: no API key for '{config.embedding.provider}'")
    elif config.embedding.provider != "fastembed":
        missing.append(f"embedding: unsupported provider '{config.embedding.provider}'")

    if config.embedding.dimension <= 0:
        missing.append("embedding.dimension must be positive")

    if missing:
        raise ConfigurationError("; ".join(missing))


def save_config(config: SiftConfig, path: Path = None) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written
    as empty strings so that they are not persisted to disk.
    """
    from dataclasses import asdict

    path = Path(path) if path else CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())
    secret_fields = {"anthropic_api_key", "openai_api_key", "google_api_key", "slack_webhook_url"}

    data = {}
    for name in ("llm", "embedding", "fetcher", "extractor", "retriever",
                 "distribution", "store", "server"):
        section = asdict(getattr(config, name))
        for key in secret_fields & env_sourced:
            if key in section:
                section[key] = ""
        data[name] = section

    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    path.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    MEDIA_DIR.mkdir(parents=True, exist_ok=True)
