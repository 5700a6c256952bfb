import logging
import os
from pathlib import Path

from dotenv import load_dotenv

"""
Configuration settings for the Regional Pokedex service.

This module loads environment variables, defines the tunables for the
ingestion pipeline (timeouts, retry policy, batch sizes, pacing) and the
HTTP surface, and validates the configuration to ensure stability.
"""

load_dotenv()

logger = logging.getLogger("regiondex.config")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"❌ {name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"❌ {name} must be an integer, got {raw!r}")


# Server Configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 8000)
ENVIRONMENT = os.getenv("ENVIRONMENT", "production")

# Data Storage
DATA_DIR = Path(os.getenv("DATA_DIR", "data"))

# Database Configuration
# Format: scheme://path_or_host
# Defaults to a local SQLite file if not specified in environment
DB_CONNECTION_STRING = os.getenv(
    "DB_CONNECTION_STRING", f"sqlite:///{DATA_DIR / 'regiondex.db'}"
)

# Upstream API
POKEAPI_URL = os.getenv("POKEAPI_URL", "https://pokeapi.co/api/v2").rstrip("/")

# Fetch Client (per attempt timeout, seconds)
API_REQUEST_TIMEOUT = _env_float("API_REQUEST_TIMEOUT", 15.0)

# Retry Configuration
MAX_RETRY_ATTEMPTS = _env_int("MAX_RETRY_ATTEMPTS", 3)
RETRY_BASE_DELAY = _env_float("RETRY_BASE_DELAY", 0.2)  # Seconds
RETRY_MAX_DELAY = _env_float("RETRY_MAX_DELAY", 10.0)  # Seconds
RETRY_JITTER = _env_float("RETRY_JITTER", 0.0)  # Max random seconds added per delay

# Authoritative total lookup (single attempt, own timeout)
AUTHORITATIVE_TOTAL_TIMEOUT = _env_float("AUTHORITATIVE_TOTAL_TIMEOUT", 15.0)

# Ingestion fan-out
INGEST_BATCH_SIZE = _env_int("INGEST_BATCH_SIZE", 5)
VARIETY_BATCH_SIZE = _env_int("VARIETY_BATCH_SIZE", 5)
INGEST_BATCH_DELAY = _env_float("INGEST_BATCH_DELAY", 0.08)  # Pacing between batches

# Pagination
DEFAULT_PAGE_LIMIT = _env_int("DEFAULT_PAGE_LIMIT", 40)
MAX_PAGE_LIMIT = _env_int("MAX_PAGE_LIMIT", 200)

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "regiondex.log")


def validate_settings():
    """
    Validate all configuration settings to catch errors at startup.

    Raises:
        ValueError: If any configuration value is invalid (e.g., negative
            timeouts, empty batches, inverted pagination bounds).
    """
    # Validate fetch settings
    if API_REQUEST_TIMEOUT <= 0:
        raise ValueError("API_REQUEST_TIMEOUT must be positive")

    if AUTHORITATIVE_TOTAL_TIMEOUT <= 0:
        raise ValueError("AUTHORITATIVE_TOTAL_TIMEOUT must be positive")

    # Validate retry settings
    if MAX_RETRY_ATTEMPTS < 1:
        raise ValueError("MAX_RETRY_ATTEMPTS must be at least 1")

    if RETRY_BASE_DELAY < 0:
        raise ValueError("RETRY_BASE_DELAY must be non-negative")

    if RETRY_MAX_DELAY < RETRY_BASE_DELAY:
        raise ValueError("RETRY_MAX_DELAY must be >= RETRY_BASE_DELAY")

    if RETRY_JITTER < 0:
        raise ValueError("RETRY_JITTER must be non-negative")

    # Validate ingestion settings
    if INGEST_BATCH_SIZE < 1:
        raise ValueError("INGEST_BATCH_SIZE must be at least 1")

    if VARIETY_BATCH_SIZE < 1:
        raise ValueError("VARIETY_BATCH_SIZE must be at least 1")

    if INGEST_BATCH_DELAY < 0:
        raise ValueError("INGEST_BATCH_DELAY must be non-negative")

    # Validate pagination
    if MAX_PAGE_LIMIT < 1:
        raise ValueError("MAX_PAGE_LIMIT must be at least 1")

    if not 1 <= DEFAULT_PAGE_LIMIT <= MAX_PAGE_LIMIT:
        raise ValueError("DEFAULT_PAGE_LIMIT must be between 1 and MAX_PAGE_LIMIT")

    if not POKEAPI_URL.startswith(("http://", "https://")):
        raise ValueError("POKEAPI_URL must be an http(s) URL")

    logger.info("✅ Configuration validation completed successfully")
