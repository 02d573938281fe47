import logging

import pytest

from portal import env


def test_validate_env_requires_base_url(clean_env) -> None:
    with pytest.raises(RuntimeError, match="PORTAL_API_BASE_URL"):
        env.validate_env()


@pytest.mark.parametrize("value", ["not a url", "ftp://portal.example.com", "portal.example.com"])
def test_validate_env_rejects_invalid_base_url(clean_env, value: str) -> None:
    clean_env.setenv("PORTAL_API_BASE_URL", value)

    with pytest.raises(RuntimeError, match="valid http"):
        env.validate_env()


def test_validate_env_rejects_bad_timeout(clean_env) -> None:
    clean_env.setenv("PORTAL_API_BASE_URL", "https://portal.example.com/api")
    clean_env.setenv("PORTAL_API_TIMEOUT", "soon")

    with pytest.raises(RuntimeError, match="PORTAL_API_TIMEOUT must be a number"):
        env.validate_env()


def test_validate_env_rejects_non_positive_timeout(clean_env) -> None:
    clean_env.setenv("PORTAL_API_BASE_URL", "https://portal.example.com/api")
    clean_env.setenv("PORTAL_API_TIMEOUT", "0")

    with pytest.raises(RuntimeError, match="greater than zero"):
        env.validate_env()


def test_validate_env_warns_about_memory_store(clean_env, caplog) -> None:
    clean_env.setenv("PORTAL_API_BASE_URL", "http://localhost:8000/api")

    with caplog.at_level(logging.WARNING, logger="portal.api"):
        env.validate_env()

    assert "PORTAL_TOKEN_STORE_PATH is not set" in caplog.text


def test_base_url_strips_trailing_slash(clean_env) -> None:
    clean_env.setenv("PORTAL_API_BASE_URL", " https://portal.example.com/api/ ")

    assert env.get_base_url() == "https://portal.example.com/api"


def test_refresh_path_defaults_and_normalizes(clean_env) -> None:
    assert env.get_refresh_path() == "/users/token/refresh/"

    clean_env.setenv("PORTAL_REFRESH_PATH", "auth/refresh/")

    assert env.get_refresh_path() == "/auth/refresh/"


def test_get_env_float_default(clean_env) -> None:
    assert env.get_env_float("PORTAL_API_TIMEOUT", 15.0) == 15.0

    clean_env.setenv("PORTAL_API_TIMEOUT", "2.5")

    assert env.get_env_float("PORTAL_API_TIMEOUT", 15.0) == 2.5


def test_setup_logging_disabled(clean_env) -> None:
    clean_env.setenv("PORTAL_API_DEBUG", "0")

    assert env.setup_logging() is False


def test_is_truthy() -> None:
    assert env.is_truthy(" Yes ")
    assert not env.is_truthy("off")
    assert not env.is_truthy(None)
