from __future__ import annotations

import logging
from pathlib import Path

HTTP_METHODS = {
    "get",
    "post",
    "put",
    "patch",
    "delete",
    "options",
    "head",
}

LOGGER = logging.getLogger("portal.api")
APP_VERSION = "0.1.0"

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_REFRESH_PATH = "/users/token/refresh/"

SILENT_HEADER = "x-silent-error"
SILENT_EXTENSION = "portal_silent"

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
