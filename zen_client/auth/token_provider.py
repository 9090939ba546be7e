"""
Token provider for the Zen session client.

This module resolves the bearer token for outgoing calls (read-through cache
over the persisted store, falling back to a refresh login) and implements the
explicit two-phase login and the logout exchange.
"""

import asyncio
import logging
from typing import Optional, Callable, Dict

from zen_shared.logging_config import AuditLogger, mask_token
from zen_shared.interfaces import ITokenStore
from zen_shared.models import (
    Verifier, Channel, Code, Empty, LoginRequest, LoginResponse, LogoutRequest
)
from zen_client.session import SessionState
from zen_client.services import ServiceClient

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"


def _phase(verifier: Verifier) -> str:
    if isinstance(verifier, Channel):
        return "channel"
    if isinstance(verifier, Code):
        return "code"
    return "refresh"


class TokenProvider:
    """
    Obtains and manages the bearer token.

    The persisted store is the source of truth; the session holds a cached
    copy. The provider does not detect server-side token rejection itself;
    callers re-run ``login`` when a call fails as unauthenticated.
    """

    def __init__(
        self,
        session: SessionState,
        store: ITokenStore,
        authentication_client: Callable[[], ServiceClient],
        single_flight: bool = True,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.session = session
        self.store = store
        self._authentication_client = authentication_client
        self.single_flight = single_flight
        self._audit_logger = audit_logger or AuditLogger()

        # in-flight refresh logins by server URL
        self._pending_refresh: Dict[str, asyncio.Future] = {}

    def has_token(self) -> bool:
        """Check whether a non-empty token is persisted."""
        return bool(self.store.get(TOKEN_KEY))

    async def get_token(self) -> str:
        """
        Resolve the current bearer token.

        Returns the persisted token without any network call when one exists;
        otherwise performs a single refresh login (Empty verifier). Failures
        propagate and are not retried.

        Returns:
            Token string (empty if the server issued none)
        """
        token = self.store.get(TOKEN_KEY)
        if token:
            self.session.set_token(token)
            return token

        if not self.single_flight:
            return await self._refresh()

        url = self.session.url
        pending = self._pending_refresh.get(url)
        if pending is None:
            logger.debug(f"No stored token, starting refresh login against {url or '<empty>'}")
            pending = asyncio.ensure_future(self._refresh())
            pending.add_done_callback(lambda future: self._clear_pending_refresh(url, future))
            self._pending_refresh[url] = pending
        else:
            logger.debug("Joining in-flight refresh login")

        # shield: one waiter being cancelled must not cancel the others
        return await asyncio.shield(pending)

    def _clear_pending_refresh(self, url: str, future: asyncio.Future) -> None:
        if self._pending_refresh.get(url) is future:
            del self._pending_refresh[url]
        if not future.cancelled():
            # marks the exception retrieved when every waiter was cancelled
            future.exception()

    async def _refresh(self) -> str:
        return await self._exchange(Empty())

    async def login(self, verifier: Verifier) -> str:
        """
        Run one step of the login exchange.

        Phase 1 (``Channel``) asks the server to send a one-time code and
        yields no token; phase 2 (``Code``) submits it. A non-empty token in
        the response is persisted and written to the session; an empty one
        never overwrites the persisted value.

        Args:
            verifier: Channel, Code or Empty

        Returns:
            Token returned by the server (empty after phase 1)
        """
        return await self._exchange(verifier)

    async def _exchange(self, verifier: Verifier) -> str:
        phase = _phase(verifier)
        logger.info(f"Login exchange ({phase}) against {self.session.url or '<empty>'}")

        try:
            response: LoginResponse = await self._authentication_client().login(
                LoginRequest(verifier=verifier, auto_refresh=True)
            )
        except Exception as e:
            self._audit_logger.log_authentication(
                phase, success=False, server_url=self.session.url, failure_reason=str(e)
            )
            raise

        token = response.token
        if token:
            self.store.set(TOKEN_KEY, token)
            self.session.set_token(token)
            logger.info(f"Login ({phase}) issued token {mask_token(token)}")
        else:
            logger.info(f"Login ({phase}) completed without a token")

        self._audit_logger.log_authentication(
            phase, success=True, token_issued=bool(token), server_url=self.session.url
        )
        return token

    async def logout(self) -> None:
        """
        Log out remotely, then forget the token.

        The store and session are cleared only after the remote call
        succeeded; on failure the token stays persisted and the error
        propagates, so the operation can be retried.
        """
        try:
            await self._authentication_client().logout(LogoutRequest())
        except Exception as e:
            logger.error(f"Logout failed, keeping stored token: {e}")
            self._audit_logger.log_logout(
                success=False, server_url=self.session.url, failure_reason=str(e)
            )
            raise

        self.store.remove(TOKEN_KEY)
        self.session.set_token("")
        self._audit_logger.log_logout(success=True, server_url=self.session.url)
        logger.info("Logged out and cleared stored token")
