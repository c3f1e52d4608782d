"""
Durable storage for the client session.

The token and the user snapshot always travel together: they are written in
one operation and cleared in one operation, so storage never holds a token
without its user or the other way around.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from zenyukti.client.config import client_settings

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "auth_user"


class TokenStore:
    """Interface shared by the storage backends."""

    def load(self) -> tuple[Optional[str], Optional[dict[str, Any]]]:
        raise NotImplementedError

    def save(self, token: str, user: dict[str, Any]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    """Process-local store, used by tests and short-lived scripts."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def load(self) -> tuple[Optional[str], Optional[dict[str, Any]]]:
        return self._data.get(TOKEN_KEY), self._data.get(USER_KEY)

    def save(self, token: str, user: dict[str, Any]) -> None:
        self._data = {TOKEN_KEY: token, USER_KEY: dict(user)}

    def clear(self) -> None:
        self._data = {}


class FileTokenStore(TokenStore):
    """
    JSON file store with restricted permissions.

    Writes go to a temporary file in the same directory which then replaces
    the real file, so a crash mid-write leaves the previous session intact.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or client_settings.STORAGE_PATH)

    def load(self) -> tuple[Optional[str], Optional[dict[str, Any]]]:
        if not self.path.exists():
            return None, None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load stored session: {e}")
            return None, None

        if not isinstance(data, dict):
            return None, None
        token = data.get(TOKEN_KEY)
        user = data.get(USER_KEY)
        return (token if isinstance(token, str) else None,
                user if isinstance(user, dict) else None)

    def save(self, token: str, user: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".auth-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({TOKEN_KEY: token, USER_KEY: user}, f, indent=2, default=str)
            os.chmod(tmp_name, 0o600)  # rw-------
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to clear stored session: {e}")
