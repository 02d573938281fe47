from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Protocol

import httpx

from auth.refresh_coordinator import RefreshCoordinator
from auth.token_exchange import RefreshError
from auth.token_store import TokenStore

from .constants import LOGGER, SILENT_EXTENSION
from .errors import ApiError, ErrorKind, classify

UNAUTHORIZED_STATUS = 401


# Identity equality keeps descriptors hashable even when json/params hold dicts.
@dataclass(frozen=True, eq=False)
class RequestDescriptor:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Any = None
    content: bytes | str | None = None
    json: Any = None
    silent: bool = False
    retried: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def with_bearer(self, token: str) -> "RequestDescriptor":
        headers = {
            key: value
            for key, value in self.headers.items()
            if key.lower() != "authorization"
        }
        headers["Authorization"] = f"Bearer {token}"
        return replace(self, headers=headers)

    def mark_retried(self) -> "RequestDescriptor":
        if self.retried:
            raise RuntimeError("Request has already been retried once.")
        return replace(self, retried=True)


class NotificationSink(Protocol):
    def notify(self, kind: ErrorKind, message: str) -> None: ...


class LoggingNotifier:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    def notify(self, kind: ErrorKind, message: str) -> None:
        self._logger.warning("User notification kind=%s message=%s", kind.value, message)


class AuthPipeline:
    """Send requests with the current bearer token.

    A 401 triggers one shared token refresh and a single replay of the
    request. Every other failure is classified, reported to the notifier
    unless the request is silent, and raised as :class:`ApiError`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_store: TokenStore,
        coordinator: RefreshCoordinator,
        *,
        notifier: NotificationSink | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._token_store = token_store
        self._coordinator = coordinator
        self._notifier = notifier or LoggingNotifier()
        self._logger = logger or LOGGER

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._coordinator

    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        access = self._token_store.get_access()
        if access:
            descriptor = descriptor.with_bearer(access)

        response = await self._submit(descriptor)
        if response.status_code != UNAUTHORIZED_STATUS or descriptor.retried:
            return await self._finish(response)

        descriptor = descriptor.mark_retried()
        await response.aclose()
        self._logger.info(
            "Unauthorized response, refreshing token (%s %s)",
            descriptor.method,
            descriptor.url,
        )
        try:
            token = await self._coordinator.obtain_fresh_token(stale_token=access)
        except RefreshError as error:
            raise self._fail(error, response.request) from error

        replayed = await self._submit(descriptor.with_bearer(token))
        return await self._finish(replayed)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Any = None,
        content: bytes | str | None = None,
        json: Any = None,
        silent: bool = False,
    ) -> httpx.Response:
        descriptor = RequestDescriptor(
            method=method.upper(),
            url=url,
            headers=dict(headers or {}),
            params=params,
            content=content,
            json=json,
            silent=silent,
        )
        return await self.send(descriptor)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AuthPipeline":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _build_request(self, descriptor: RequestDescriptor) -> httpx.Request:
        extensions = {SILENT_EXTENSION: True} if descriptor.silent else None
        return self._client.build_request(
            descriptor.method,
            descriptor.url,
            headers=dict(descriptor.headers),
            params=descriptor.params,
            content=descriptor.content,
            json=descriptor.json,
            extensions=extensions,
        )

    async def _submit(self, descriptor: RequestDescriptor) -> httpx.Response:
        request = self._build_request(descriptor)
        try:
            return await self._client.send(request)
        except httpx.RequestError as error:
            raise self._fail(error, request) from error

    async def _finish(self, response: httpx.Response) -> httpx.Response:
        if response.status_code < 400:
            return response
        await response.aread()
        raise self._fail(response, response.request, response=response)

    def _fail(
        self,
        error: object,
        request: httpx.Request,
        *,
        response: httpx.Response | None = None,
    ) -> ApiError:
        classified = classify(error, request=request)
        self._logger.warning(
            "Request failed kind=%s status=%s (%s %s)",
            classified.kind.value,
            classified.status_code,
            request.method,
            request.url,
        )
        if not classified.silent:
            self._notifier.notify(classified.kind, classified.message)
        return ApiError(classified, response=response)
