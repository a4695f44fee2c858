"""
Configuration module for the Guru memory engine.

Loads application settings from config.yaml and secrets from environment variables.
"""

import logging
import os
import contextvars
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Context variable holding the tool currently being executed, for logging
tool_context = contextvars.ContextVar("tool_name", default=None)


class ToolLogFilter(logging.Filter):
    """Filter to inject the active tool name into log records."""
    def filter(self, record):
        tool_name = tool_context.get()
        if tool_name is not None:
            record.tool_info = f" [{tool_name}]"
        else:
            record.tool_info = ""
        return True


# Default config file path
CONFIG_FILE = Path(
    os.getenv("GURU_CONFIG_FILE", Path(__file__).parent.parent / "config.yaml")
)


def _load_yaml_config() -> dict:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            return yaml.safe_load(f) or {}
    return {}


# Load YAML config once at module import
_yaml_config = _load_yaml_config()


def _get_yaml(section: str, key: str, default=None):
    """Get a value from the YAML config."""
    return (_yaml_config.get(section) or {}).get(key, default)


@dataclass
class StoreConfig:
    """Where and how the vector store persists its tables."""
    store_type: Literal["chroma", "pgvector"] = field(
        default_factory=lambda: _get_yaml("store", "store_type", "chroma")
    )
    path: str = field(
        default_factory=lambda: _get_yaml("store", "path", "./guru_store")
    )
    # Secret from .env (contains credentials)
    postgres_url: str = field(default_factory=lambda: os.getenv("POSTGRES_URL", ""))
    scan_page_size: int = field(
        default_factory=lambda: _get_yaml("store", "scan_page_size", 500)
    )


@dataclass
class EmbeddingConfig:
    """Which embedding strategy to use."""
    # "hash" is deterministic but not semantic; "local" and "openai" use real models
    provider: Literal["hash", "local", "openai"] = field(
        default_factory=lambda: _get_yaml("embedding", "provider", "hash")
    )
    model: str = field(
        default_factory=lambda: _get_yaml("embedding", "model", "")
    )
    # Answer with the hash transform when the model fails
    fallback: bool = field(
        default_factory=lambda: _get_yaml("embedding", "fallback", True)
    )
    # Secret from .env
    api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))


@dataclass
class PatternConfig:
    """Pattern consolidation settings."""
    # Max L2 distance for two patterns to count as the same one.
    # None = the nearest stored pattern always matches.
    match_threshold: Optional[float] = field(
        default_factory=lambda: _get_yaml("patterns", "match_threshold", None)
    )


@dataclass
class InsightConfig:
    """Insight generation settings."""
    rules: list[str] = field(
        default_factory=lambda: _get_yaml("insights", "rules", ["usage_summary"])
    )
    list_limit: int = field(
        default_factory=lambda: _get_yaml("insights", "list_limit", 20)
    )


@dataclass
class DocumentConfig:
    """Document chunking settings."""
    chunk_size: int = field(
        default_factory=lambda: _get_yaml("documents", "chunk_size", 1000)
    )
    chunk_overlap: int = field(
        default_factory=lambda: _get_yaml("documents", "chunk_overlap", 200)
    )
    max_content_chars: int = field(
        default_factory=lambda: _get_yaml("documents", "max_content_chars", 5 * 1024 * 1024)
    )
    max_results: int = field(
        default_factory=lambda: _get_yaml("documents", "max_results", 20)
    )


@dataclass
class AppConfig:
    """Application settings from YAML."""
    log_level: str = field(
        default_factory=lambda: _get_yaml("logging", "level", "INFO")
    )


@dataclass
class Config:
    """Main configuration container."""
    store: StoreConfig = field(default_factory=StoreConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    insights: InsightConfig = field(default_factory=InsightConfig)
    documents: DocumentConfig = field(default_factory=DocumentConfig)
    app: AppConfig = field(default_factory=AppConfig)

    def setup_logging(self) -> logging.Logger:
        """Configure and return the application logger."""
        # Reset existing handlers to ensure clean configuration
        root = logging.getLogger()
        if root.handlers:
            for handler in list(root.handlers):
                root.removeHandler(handler)

        logging.basicConfig(
            level=getattr(logging, self.app.log_level.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s%(tool_info)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Add filter to the handler created by basicConfig
        for handler in logging.getLogger().handlers:
            handler.addFilter(ToolLogFilter())

        return logging.getLogger("guru")

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of missing/invalid settings.

        Returns:
            List of validation error messages, empty if all valid.
        """
        errors = []

        if self.store.store_type not in ("chroma", "pgvector"):
            errors.append(f"Unknown store.store_type: {self.store.store_type}")
        elif self.store.store_type == "pgvector" and not self.store.postgres_url:
            errors.append("POSTGRES_URL is required when using the pgvector store")

        if self.embedding.provider not in ("hash", "local", "openai"):
            errors.append(f"Unknown embedding.provider: {self.embedding.provider}")
        elif self.embedding.provider == "openai" and not self.embedding.api_key:
            errors.append("OPENAI_API_KEY is required when using OpenAI embeddings")

        if self.documents.chunk_overlap >= self.documents.chunk_size:
            errors.append("documents.chunk_overlap must be smaller than documents.chunk_size")

        if self.patterns.match_threshold is not None and self.patterns.match_threshold < 0:
            errors.append("patterns.match_threshold must be non-negative")

        return errors


# Global configuration instance
config = Config()
