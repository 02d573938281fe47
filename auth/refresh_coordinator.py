from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, InvalidStateError
from typing import Awaitable, Callable

from auth.models import RefreshState, TokenPair
from auth.token_exchange import RefreshError, RefreshFailure
from auth.token_store import TokenStore
from portal.constants import LOGGER

RefreshFn = Callable[[str], Awaitable[TokenPair]]


def _settle(waiter: Future, *, token: str | None = None, error: BaseException | None = None) -> None:
    # A caller that was cancelled while queued already gave up on its result.
    if waiter.cancelled():
        return
    try:
        if error is not None:
            waiter.set_exception(error)
        else:
            waiter.set_result(token)
    except InvalidStateError:
        pass


class RefreshCoordinator:
    """Single-flight access token refresh shared by every request path.

    Only the caller that moves the state from IDLE to REFRESHING talks to the
    backend. Callers arriving while a refresh is in flight queue a waiter and
    receive the same outcome, in arrival order. Waiters are
    ``concurrent.futures.Future`` objects so callers on other threads and
    event loops can share one coordinator.
    """

    def __init__(
        self,
        token_store: TokenStore,
        refresh_fn: RefreshFn,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._token_store = token_store
        self._refresh_fn = refresh_fn
        self._logger = logger or LOGGER
        self._lock = threading.Lock()
        self._state = RefreshState.IDLE
        self._waiters: list[Future] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> RefreshState:
        with self._lock:
            return self._state

    @property
    def pending_waiters(self) -> int:
        with self._lock:
            return len(self._waiters)

    async def obtain_fresh_token(self, stale_token: str | None = None) -> str:
        if stale_token is not None:
            current = self._token_store.get_access()
            if current and current != stale_token:
                return current

        waiter: Future = Future()
        with self._lock:
            if self._state is RefreshState.REFRESHING:
                self._waiters.append(waiter)
                leader = False
            else:
                self._state = RefreshState.REFRESHING
                leader = True

        if not leader:
            return await asyncio.wrap_future(waiter)

        refresh_token = self._token_store.get_refresh()
        if not refresh_token:
            self._token_store.clear()
            error = RefreshError(
                RefreshFailure.NO_REFRESH_TOKEN,
                "No refresh token available; session expired.",
            )
            self._release(error=error)
            self._logger.warning("Refresh skipped: no refresh token in store")
            raise error

        task = asyncio.ensure_future(self._refresh(refresh_token, waiter))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # The exchange runs in its own task; cancelling this caller leaves the
        # queued waiters unaffected.
        return await asyncio.wrap_future(waiter)

    async def _refresh(self, refresh_token: str, leader: Future) -> None:
        self._logger.info("Refreshing access token")
        try:
            pair = await self._refresh_fn(refresh_token)
        except asyncio.CancelledError:
            # The backend rejected nothing; keep the stored session.
            error = RefreshError(RefreshFailure.EXCHANGE_FAILED, "Token refresh was cancelled.")
            released = self._release(error=error)
            self._logger.warning("Access token refresh cancelled (waiters=%s)", released)
            _settle(leader, error=error)
            raise
        except RefreshError as error:
            self._fail(error, leader)
            return
        except Exception as exc:
            error = RefreshError(RefreshFailure.EXCHANGE_FAILED, f"Token refresh failed: {exc}")
            error.__cause__ = exc
            self._fail(error, leader)
            return

        self._token_store.set_access(pair.access)
        self._token_store.set_refresh(pair.refresh or refresh_token)
        released = self._release(token=pair.access)
        self._logger.info(
            "Access token refreshed (rotated=%s, waiters=%s)",
            bool(pair.refresh and pair.refresh != refresh_token),
            released,
        )
        _settle(leader, token=pair.access)

    def _fail(self, error: RefreshError, leader: Future) -> None:
        self._token_store.clear()
        released = self._release(error=error)
        self._logger.warning("Access token refresh failed (waiters=%s): %s", released, error)
        _settle(leader, error=error)

    def _release(self, *, token: str | None = None, error: BaseException | None = None) -> int:
        with self._lock:
            waiters = self._waiters
            self._waiters = []
            self._state = RefreshState.IDLE

        for waiter in waiters:
            _settle(waiter, token=token, error=error)
        return len(waiters)
