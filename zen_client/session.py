"""
Session state for the Zen session client.

Holds the base URL and the current bearer token. Every effective change bumps
``version``; transports and service clients derived from the session compare
against it and rebuild lazily when it moves.
"""

import logging

from zen_shared.logging_config import mask_token
from zen_shared.models import SessionSnapshot

logger = logging.getLogger(__name__)


class SessionState:
    """Mutable session context shared by reference with all derived components."""

    def __init__(self, url: str = "", token: str = ""):
        self._url = url
        self._token = token
        self._version = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def token(self) -> str:
        return self._token

    @property
    def version(self) -> int:
        return self._version

    def set_url(self, url: str) -> None:
        """Set the base URL; last write wins."""
        url = url or ""
        if url == self._url:
            return
        self._url = url
        self._version += 1
        logger.info(f"Session URL set to {url or '<empty>'} (version {self._version})")

    def set_token(self, token: str) -> None:
        """Set the cached bearer token; last write wins."""
        token = token or ""
        if token == self._token:
            return
        self._token = token
        self._version += 1
        logger.debug(f"Session token set to {mask_token(token)} (version {self._version})")

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(url=self._url, token=self._token, version=self._version)
