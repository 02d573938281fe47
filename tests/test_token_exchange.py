import json

import httpx
import pytest

from auth.models import TokenPair
from auth.token_exchange import RefreshError, RefreshFailure, refresh_access_token

REFRESH_URL = "https://portal.example.com/api/users/token/refresh/"


@pytest.mark.asyncio
async def test_refresh_success_with_rotation(httpx_mock) -> None:
    httpx_mock.add_response(
        url=REFRESH_URL,
        method="POST",
        json={"access": "access-2", "refresh": "refresh-2"},
    )

    async with httpx.AsyncClient() as client:
        pair = await refresh_access_token("refresh-1", client=client, url=REFRESH_URL)

    assert pair == TokenPair(access="access-2", refresh="refresh-2")
    assert json.loads(httpx_mock.get_request().content) == {"refresh": "refresh-1"}


@pytest.mark.asyncio
async def test_refresh_success_without_rotation(httpx_mock) -> None:
    httpx_mock.add_response(url=REFRESH_URL, method="POST", json={"access": "access-2"})

    async with httpx.AsyncClient() as client:
        pair = await refresh_access_token("refresh-1", client=client, url=REFRESH_URL)

    assert pair.access == "access-2"
    assert pair.refresh is None


@pytest.mark.asyncio
async def test_refresh_error_status(httpx_mock) -> None:
    httpx_mock.add_response(
        url=REFRESH_URL,
        method="POST",
        status_code=401,
        json={"detail": "Token is blacklisted", "code": "token_not_valid"},
    )

    async with httpx.AsyncClient() as client:
        with pytest.raises(RefreshError, match="status 401") as error:
            await refresh_access_token("refresh-1", client=client, url=REFRESH_URL)

    assert error.value.reason is RefreshFailure.EXCHANGE_FAILED
    assert isinstance(error.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_refresh_network_error(httpx_mock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=REFRESH_URL)

    async with httpx.AsyncClient() as client:
        with pytest.raises(RefreshError) as error:
            await refresh_access_token("refresh-1", client=client, url=REFRESH_URL)

    assert error.value.reason is RefreshFailure.EXCHANGE_FAILED
    assert isinstance(error.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_refresh_malformed_payload(httpx_mock) -> None:
    httpx_mock.add_response(url=REFRESH_URL, method="POST", json={"token": "nope"})

    async with httpx.AsyncClient() as client:
        with pytest.raises(RefreshError, match="malformed"):
            await refresh_access_token("refresh-1", client=client, url=REFRESH_URL)


@pytest.mark.asyncio
async def test_refresh_non_json_payload(httpx_mock) -> None:
    httpx_mock.add_response(url=REFRESH_URL, method="POST", text="<html>ok</html>")

    async with httpx.AsyncClient() as client:
        with pytest.raises(RefreshError, match="malformed"):
            await refresh_access_token("refresh-1", client=client, url=REFRESH_URL)


def test_token_pair_rejects_non_string_refresh() -> None:
    with pytest.raises(RuntimeError, match="refresh token must be a string"):
        TokenPair.from_payload({"access": "a", "refresh": 42})
