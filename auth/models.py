from __future__ import annotations

import enum
from dataclasses import dataclass


class RefreshState(enum.Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class TokenPair:
    access: str
    refresh: str | None = None

    @classmethod
    def from_payload(cls, payload: object) -> "TokenPair":
        if not isinstance(payload, dict):
            raise RuntimeError("Refresh response must be a JSON object.")

        access = payload.get("access")
        refresh = payload.get("refresh")

        if not isinstance(access, str) or not access:
            raise RuntimeError("Refresh response missing access token.")
        if refresh is not None and not isinstance(refresh, str):
            raise RuntimeError("Refresh response refresh token must be a string.")

        return cls(access=access, refresh=refresh or None)
