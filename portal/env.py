from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from .constants import DEFAULT_REFRESH_PATH, DEFAULT_TIMEOUT_SECONDS, ENV_FILE, LOGGER

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def get_base_url() -> str:
    return os.getenv("PORTAL_API_BASE_URL", "").strip().rstrip("/")


def get_refresh_path() -> str:
    path = os.getenv("PORTAL_REFRESH_PATH", "").strip() or DEFAULT_REFRESH_PATH
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def get_token_store_path() -> str | None:
    return os.getenv("PORTAL_TOKEN_STORE_PATH", "").strip() or None


def load_env() -> None:
    if not ENV_FILE.exists():
        return
    load_dotenv(ENV_FILE, override=True)


def validate_env() -> None:
    base_url = get_base_url()
    if not base_url:
        raise RuntimeError("Missing required environment variable: PORTAL_API_BASE_URL")

    try:
        _URL_ADAPTER.validate_python(base_url)
    except ValidationError:
        raise RuntimeError(
            "PORTAL_API_BASE_URL must be a valid http(s) URL (for example: "
            "https://portal.example.com/api)."
        )

    timeout = get_env_float("PORTAL_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
    if timeout <= 0:
        raise RuntimeError("PORTAL_API_TIMEOUT must be greater than zero.")

    if get_token_store_path() is None:
        LOGGER.warning(
            "PORTAL_TOKEN_STORE_PATH is not set; tokens will only live in memory."
        )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("PORTAL_API_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
