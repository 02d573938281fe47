from __future__ import annotations

import enum

import httpx

from auth.models import TokenPair


class RefreshFailure(enum.Enum):
    NO_REFRESH_TOKEN = "no_refresh_token"
    EXCHANGE_FAILED = "exchange_failed"


class RefreshError(RuntimeError):
    def __init__(self, reason: RefreshFailure, message: str | None = None) -> None:
        super().__init__(message or f"Token refresh failed ({reason.value}).")
        self.reason = reason
        self.status_code = 401


async def refresh_access_token(
    refresh_token: str,
    *,
    client: httpx.AsyncClient,
    url: str,
) -> TokenPair:
    """POST the refresh token to the backend and return the new pair.

    ``client`` must be the raw client, not the authenticated pipeline, so the
    exchange never re-enters the 401 handling it is serving.
    """
    try:
        response = await client.post(url, json={"refresh": refresh_token})
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        raise RefreshError(
            RefreshFailure.EXCHANGE_FAILED,
            f"Refresh request failed with status {error.response.status_code}.",
        ) from error
    except httpx.HTTPError as error:
        raise RefreshError(
            RefreshFailure.EXCHANGE_FAILED,
            f"Refresh request failed: {error.__class__.__name__}.",
        ) from error

    try:
        return TokenPair.from_payload(response.json())
    except (ValueError, RuntimeError) as error:
        raise RefreshError(
            RefreshFailure.EXCHANGE_FAILED,
            f"Refresh response was malformed: {error}",
        ) from error
