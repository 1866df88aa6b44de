"""Application configuration with sensible defaults."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from askdocs.errors import ConfigurationError

# Config file
DEFAULT_CONFIG_PATH = Path.home() / ".askdocs.yml"

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "120.0"))

# Vector database
DATABASE_URL = os.getenv("DATABASE_URL", "http://localhost:8000")
VECTOR_STORE_BATCH_SIZE = int(os.getenv("VECTOR_STORE_BATCH_SIZE", "50"))

# Splitting (character-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "300"))

# Retrieval and grading
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
SCORE_THRESHOLD = float(os.getenv("SCORE_THRESHOLD", "0.5"))
GRADER_CONCURRENCY = int(os.getenv("GRADER_CONCURRENCY", "4"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")


@dataclass(frozen=True)
class IngestSettings:
    """Options of the ingest command, resolved once at startup."""

    document_path: Path
    database_name: str
    database_url: str = DATABASE_URL
    embedding_model: str = EMBEDDING_MODEL
    chunk_size: int = CHUNK_SIZE
    chunk_overlap: int = CHUNK_OVERLAP
    base_source_url: Optional[str] = None
    loader: str = "markdown"
    splitter: str = "markdown"
    batch_size: int = VECTOR_STORE_BATCH_SIZE
    ollama_url: str = OLLAMA_BASE_URL


@dataclass(frozen=True)
class QuerySettings:
    """Options of the query command."""

    question: str
    database_name: str
    database_url: str = DATABASE_URL
    embedding_model: str = EMBEDDING_MODEL
    result_count: int = RETRIEVAL_TOP_K
    score_threshold: float = 0.0
    ollama_url: str = OLLAMA_BASE_URL


@dataclass(frozen=True)
class AskSettings:
    """Options of the ask command."""

    question: str
    database_name: str
    model: str
    database_url: str = DATABASE_URL
    embedding_model: str = EMBEDDING_MODEL
    result_count: int = RETRIEVAL_TOP_K
    score_threshold: float = SCORE_THRESHOLD
    grader_concurrency: int = GRADER_CONCURRENCY
    ollama_url: str = OLLAMA_BASE_URL


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read option defaults from a YAML config file.

    Keys may use dashes (as on the command line) or underscores; they are
    normalised to underscores. A missing default file is not an error, a
    missing explicitly requested file is.

    Args:
        path: Config file path (default: ~/.askdocs.yml if it exists)

    Returns:
        Mapping of option name to value

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
        if not path.exists():
            return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"unable to read config file [{path}]: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in config file [{path}]: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"config file [{path}] must contain a mapping, got {type(data).__name__}"
        )

    return {str(key).replace("-", "_"): value for key, value in data.items()}
