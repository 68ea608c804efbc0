"""Configuration helpers and Settings container.

This module provides a small `Settings` dataclass and `get_settings` which
reads environment variables (optionally from a `.env` file at the project
root) and converts them into typed values.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

from dotenv import load_dotenv

# Explicitly load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_API_BASE = "https://zerosumserver.onrender.com"


@dataclass(frozen=True)
class Settings:
    """Container for pipeline configuration read from the environment.

    Attributes:
        api_base: Base URL of the filings API.
        api_token: Bearer token for the filings API (may be empty for
            offline commands such as `count` and `parse`).
        chunk_size: Default number of records per upload chunk.
        test_row_limit: Row limit used when running in test mode.
        read_size: Block size in bytes for streaming reads.
        index_encoding: Text encoding of master index files.
        request_timeout: Optional per-request timeout in seconds.
        strict_id_mapping: Fail filing chunks whose dimension IDs the
            server did not return instead of passing local IDs through.
        sec_user_agent: SEC User-Agent header for archive downloads.
        edgar_data_dir: Local cache directory for downloaded indexes.
    """
    api_base: str
    api_token: str
    chunk_size: int
    test_row_limit: int
    read_size: int
    index_encoding: str
    request_timeout: float | None
    strict_id_mapping: bool
    sec_user_agent: str
    edgar_data_dir: Path


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1, got {value}")
    return value


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def get_settings() -> Settings:
    """Read environment variables and return a frozen `Settings` object.

    Raises:
        RuntimeError: if a numeric variable is not a positive number.
    """
    timeout_raw = os.getenv("REQUEST_TIMEOUT", "").strip()
    request_timeout: float | None = None
    if timeout_raw:
        try:
            request_timeout = float(timeout_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"REQUEST_TIMEOUT must be a number of seconds, got {timeout_raw!r}"
            ) from exc

    return Settings(
        api_base=os.getenv("API_BASE", DEFAULT_API_BASE).rstrip("/"),
        api_token=os.getenv("API_TOKEN", "").strip(),
        chunk_size=_int_env("CHUNK_SIZE", 5000),
        test_row_limit=_int_env("TEST_ROW_LIMIT", 10_000),
        read_size=_int_env("READ_SIZE", 64 * 1024),
        index_encoding=os.getenv("INDEX_ENCODING", "latin-1"),
        request_timeout=request_timeout,
        strict_id_mapping=_bool_env("STRICT_ID_MAPPING"),
        sec_user_agent=os.getenv("SEC_USER_AGENT", "").strip(),
        edgar_data_dir=Path(os.getenv("EDGAR_DATA_DIR", "data/edgar_cache")),
    )


def require_user_agent(settings: Settings) -> str:
    """Return the SEC User-Agent or fail with a helpful message.

    Raises:
        RuntimeError: if `SEC_USER_AGENT` is not set in the environment.
    """
    if not settings.sec_user_agent:
        raise RuntimeError(
            "SEC_USER_AGENT is required. Set it in .env "
            "(example: 'Your Name your.email@example.com')."
        )
    return settings.sec_user_agent
