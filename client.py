from __future__ import annotations

import asyncio
import json
import sys

import httpx

from auth.models import RefreshState, TokenPair
from auth.refresh_coordinator import RefreshCoordinator
from auth.token_exchange import RefreshError, RefreshFailure, refresh_access_token
from auth.token_store import FileTokenStore, MemoryTokenStore, TokenStore
from portal.constants import APP_VERSION, DEFAULT_TIMEOUT_SECONDS, HTTP_METHODS, LOGGER
from portal.env import (
    get_base_url,
    get_env_float,
    get_refresh_path,
    get_token_store_path,
    is_truthy,
    load_env,
    setup_logging,
    validate_env,
)
from portal.errors import ApiError, ClassifiedError, ErrorKind, classify
from portal.http import AuthPipeline, LoggingNotifier, NotificationSink, RequestDescriptor


def build_token_store() -> TokenStore:
    path = get_token_store_path()
    if path is None:
        return MemoryTokenStore()
    return FileTokenStore(path)


def create_client(
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    token_store: TokenStore | None = None,
    notifier: NotificationSink | None = None,
) -> AuthPipeline:
    load_env()
    debug_enabled = setup_logging()
    validate_env()

    base_url = get_base_url()
    timeout = get_env_float("PORTAL_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
    refresh_path = get_refresh_path()
    store = token_store if token_store is not None else build_token_store()

    async def log_request(request: httpx.Request) -> None:
        if not debug_enabled:
            return
        LOGGER.info("Portal API request %s %s", request.method, request.url)

    async def log_response(response: httpx.Response) -> None:
        if not debug_enabled:
            return
        LOGGER.info(
            "Portal API response %s %s -> %s",
            response.request.method,
            response.request.url,
            response.status_code,
        )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            if len(text) > 1000:
                text = text[:1000] + "...<truncated>"
            LOGGER.warning("Portal API error body: %s", text)

    client = httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        transport=transport,
        event_hooks={"request": [log_request], "response": [log_response]},
    )

    async def exchange(refresh_token: str) -> TokenPair:
        return await refresh_access_token(refresh_token, client=client, url=refresh_path)

    coordinator = RefreshCoordinator(store, exchange)
    return AuthPipeline(client, store, coordinator, notifier=notifier)


async def _run_once(method: str, path: str) -> int:
    async with create_client() as pipeline:
        try:
            response = await pipeline.request(method, path)
        except ApiError as error:
            print(f"{error.kind.value}: {error.message}", file=sys.stderr)
            return 1

    try:
        print(json.dumps(response.json(), indent=2, sort_keys=True))
    except ValueError:
        print(response.text)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2 or args[0].lower() not in HTTP_METHODS:
        print("usage: client.py METHOD PATH", file=sys.stderr)
        return 2
    return asyncio.run(_run_once(args[0].upper(), args[1]))


if __name__ == "__main__":
    sys.exit(main())
