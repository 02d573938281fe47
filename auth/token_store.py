from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from auth.models import TokenPair

ACCESS_KEY = "access"
REFRESH_KEY = "refresh"


class TokenStore(ABC):
    """Holder for the live access/refresh token pair.

    Each operation is atomic; callers never observe a half-written pair.
    """

    @abstractmethod
    def get_access(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def get_refresh(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set_access(self, token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_refresh(self, token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, initial: TokenPair | None = None) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, str] = {}
        if initial is not None:
            self._tokens[ACCESS_KEY] = initial.access
            if initial.refresh:
                self._tokens[REFRESH_KEY] = initial.refresh

    def get_access(self) -> str | None:
        with self._lock:
            return self._tokens.get(ACCESS_KEY)

    def get_refresh(self) -> str | None:
        with self._lock:
            return self._tokens.get(REFRESH_KEY)

    def set_access(self, token: str) -> None:
        with self._lock:
            self._tokens[ACCESS_KEY] = token

    def set_refresh(self, token: str) -> None:
        with self._lock:
            self._tokens[REFRESH_KEY] = token

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()


class FileTokenStore(TokenStore):
    """Token pair persisted as a small JSON document, replaced atomically."""

    def __init__(
        self,
        path: str | Path = ".tokens.json",
        initial: TokenPair | None = None,
    ) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        if initial is not None:
            with self._lock:
                self._save(initial.access, initial.refresh)

    def get_access(self) -> str | None:
        with self._lock:
            return self._load()[0]

    def get_refresh(self) -> str | None:
        with self._lock:
            return self._load()[1]

    def set_access(self, token: str) -> None:
        with self._lock:
            _, refresh = self._load()
            self._save(token, refresh)

    def set_refresh(self, token: str) -> None:
        with self._lock:
            access, _ = self._load()
            self._save(access, token)

    def clear(self) -> None:
        with self._lock:
            self._save(None, None)

    def _load(self) -> tuple[str | None, str | None]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None, None
        if not isinstance(raw, dict):
            raise RuntimeError("Token store file is invalid; expected top-level JSON object.")

        access = raw.get(ACCESS_KEY)
        refresh = raw.get(REFRESH_KEY)
        return (
            access if isinstance(access, str) else None,
            refresh if isinstance(refresh, str) else None,
        )

    def _save(self, access: str | None, refresh: str | None) -> None:
        document = {
            key: value
            for key, value in ((ACCESS_KEY, access), (REFRESH_KEY, refresh))
            if value
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._path.parent,
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            json.dump(document, handle, indent=2, sort_keys=True)
        try:
            os.replace(handle.name, self._path)
        except OSError:
            os.unlink(handle.name)
            raise
