from __future__ import annotations

import asyncio
import enum
import json
from dataclasses import dataclass

import httpx

from auth.token_exchange import RefreshError

from .constants import SILENT_EXTENSION, SILENT_HEADER

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
CANCELLED_MESSAGE = "Request cancelled."
NETWORK_MESSAGE = "Couldn't reach the server. Check your connection and try again."
TIMEOUT_MESSAGE = "The request timed out. Please try again."
GENERIC_MESSAGE = "Something went wrong. Please try again."

DIRECT_MESSAGE_KEYS = ("detail", "error", "message", "msg", "reason", "description")
NON_FIELD_ERRORS_KEY = "non_field_errors"
LEAKAGE_MARKERS = (
    "traceback",
    "stack trace",
    "exception",
    "django",
    "sql",
    "typeerror",
    "valueerror",
)
MAX_TEXT_BODY_LENGTH = 300
MAX_CANDIDATE_LENGTH = 260


class ErrorKind(enum.Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    silent: bool
    status_code: int | None = None


class ApiError(RuntimeError):
    """Terminal failure of a pipeline request, safe to show to the user."""

    def __init__(
        self,
        classified: ClassifiedError,
        *,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(classified.message)
        self.classified = classified
        self.kind = classified.kind
        self.message = classified.message
        self.silent = classified.silent
        self.status_code = classified.status_code
        self.response = response


def is_silent_request(request: httpx.Request | None) -> bool:
    if request is None:
        return False
    if request.extensions.get(SILENT_EXTENSION) is True:
        return True
    flag = request.headers.get(SILENT_HEADER)
    return flag is not None and flag.strip().lower() in {"1", "true"}


def status_to_kind(status_code: int) -> ErrorKind:
    if status_code == 401:
        return ErrorKind.UNAUTHORIZED
    if status_code == 403:
        return ErrorKind.FORBIDDEN
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if 500 <= status_code < 600:
        return ErrorKind.SERVER_ERROR
    if 400 <= status_code < 500:
        return ErrorKind.CLIENT_ERROR
    return ErrorKind.UNKNOWN


def _retry_after_seconds(header: str | None) -> int | None:
    if header is None:
        return None
    try:
        seconds = int(header.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def friendly_status_message(status_code: int | None, retry_after: int | None = None) -> str:
    if not status_code:
        return NETWORK_MESSAGE
    if status_code == 400:
        return "Your request couldn't be processed. Please check and try again."
    if status_code == 401:
        return SESSION_EXPIRED_MESSAGE
    if status_code == 403:
        return "You don't have permission to do that."
    if status_code == 404:
        return "Service endpoint not found. Please contact support."
    if status_code == 408:
        return TIMEOUT_MESSAGE
    if status_code == 413:
        return "Request is too large. Please shorten it."
    if status_code == 429:
        if retry_after is not None:
            return f"Too many requests. Please wait {retry_after} seconds and try again."
        return "Too many requests. Please wait a moment and try again."
    if status_code >= 500:
        return "Server error. Please try again in a bit."
    return GENERIC_MESSAGE


def looks_like_html(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered.startswith("<!doctype") or lowered.startswith("<html") or "<body" in lowered


def looks_internal(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in LEAKAGE_MARKERS)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "…"


def _scalar_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_error_messages(data: object, path: str = "", out: list[str] | None = None) -> list[str]:
    """Flatten an arbitrary JSON error body into ``path: text`` strings.

    The usual message keys are visited first and keep the parent path; every
    other key extends the path (``field.sub``). Lists keep the parent path.
    """
    if out is None:
        out = []
    if data is None:
        return out

    if isinstance(data, str):
        text = data.strip()
        if text:
            out.append(f"{path}: {text}" if path else text)
        return out

    if isinstance(data, (int, float, bool)):
        text = _scalar_text(data)
        out.append(f"{path}: {text}" if path else text)
        return out

    if isinstance(data, list):
        for item in data:
            flatten_error_messages(item, path, out)
        return out

    if isinstance(data, dict):
        for key in DIRECT_MESSAGE_KEYS:
            if data.get(key) is not None:
                flatten_error_messages(data[key], path, out)
                break

        if data.get(NON_FIELD_ERRORS_KEY) is not None:
            flatten_error_messages(data[NON_FIELD_ERRORS_KEY], path or "error", out)

        for key, value in data.items():
            if key in DIRECT_MESSAGE_KEYS or key == NON_FIELD_ERRORS_KEY:
                continue
            next_path = f"{path}.{key}" if path else str(key)
            flatten_error_messages(value, next_path, out)
        return out

    text = str(data)
    out.append(f"{path}: {text}" if path else text)
    return out


def _is_safe(candidate: str) -> bool:
    return not looks_like_html(candidate) and not looks_internal(candidate)


def best_message_from_body(content: bytes) -> str | None:
    if not content:
        return None

    text = content.decode("utf-8", errors="replace").strip()
    if not text:
        return None

    try:
        data = json.loads(text)
    except ValueError:
        data = text

    if isinstance(data, str):
        candidate = _truncate(data.strip(), MAX_TEXT_BODY_LENGTH)
        return candidate if candidate and _is_safe(candidate) else None

    candidates = [
        _truncate(message.strip(), MAX_CANDIDATE_LENGTH)
        for message in flatten_error_messages(data)
        if message.strip()
    ]
    safe = [candidate for candidate in candidates if _is_safe(candidate)]
    if not safe:
        return None
    return min(safe, key=len)


def _request_of(error: object) -> httpx.Request | None:
    try:
        return error.request  # type: ignore[attr-defined]
    except (AttributeError, RuntimeError):
        return None


def _response_body(response: httpx.Response) -> bytes:
    try:
        return response.content
    except httpx.ResponseNotRead:
        return b""


def _classify_response(response: httpx.Response, silent: bool) -> ClassifiedError:
    status_code = response.status_code
    retry_after = _retry_after_seconds(response.headers.get("retry-after"))
    fallback = friendly_status_message(status_code, retry_after)
    message = best_message_from_body(_response_body(response)) or fallback
    return ClassifiedError(status_to_kind(status_code), message, silent, status_code)


def classify(error: object, *, request: httpx.Request | None = None) -> ClassifiedError:
    """Map a raw failure to ``(kind, message, silent)``.

    ``error`` may be an exception raised by httpx or the pipeline, or a
    response whose body has been read. ``request`` overrides the request the
    silent flag is read from.
    """
    if isinstance(error, asyncio.CancelledError):
        return ClassifiedError(ErrorKind.CANCELLED, CANCELLED_MESSAGE, True)

    if isinstance(error, ApiError):
        if error.response is None:
            return error.classified
        error = error.response

    if isinstance(error, httpx.HTTPStatusError):
        error = error.response

    if request is None:
        request = _request_of(error)
    silent = is_silent_request(request)

    if isinstance(error, RefreshError):
        return ClassifiedError(ErrorKind.UNAUTHORIZED, SESSION_EXPIRED_MESSAGE, silent, 401)

    if isinstance(error, httpx.Response):
        return _classify_response(error, silent)

    if isinstance(error, httpx.TimeoutException):
        return ClassifiedError(ErrorKind.TIMEOUT, TIMEOUT_MESSAGE, silent)

    if isinstance(error, httpx.TransportError):
        return ClassifiedError(ErrorKind.NETWORK, NETWORK_MESSAGE, silent)

    return ClassifiedError(ErrorKind.UNKNOWN, GENERIC_MESSAGE, silent)
