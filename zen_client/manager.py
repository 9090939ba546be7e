"""
Session manager for the Zen session client.

Builds the session state, transports, service clients, token provider and
error boundary from a ClientConfiguration and wires them together.
"""

import logging
from typing import Optional, Any

from zen_shared.interfaces import ITokenStore, INotificationSink
from zen_shared.logging_config import AuditLogger, AuditEventType
from zen_shared.models import Verifier, Empty
from zen_client.config import ClientConfiguration
from zen_client.session import SessionState
from zen_client.transport import TransportFactory
from zen_client.registry import ClientRegistry
from zen_client.auth.token_provider import TokenProvider
from zen_client.auth.token_storage import create_token_store
from zen_client.error_handling import ErrorBoundary, Action, Recovery, ProcessingCallback

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Owns one authenticated session against one server.

    Usage::

        async with SessionManager(config) as manager:
            await manager.login(Channel("user@example.com"))
            await manager.login(Code("1234"))
            await manager.exec(lambda: manager.clients.management().get({}),
                               recovery=manager.refresh_recovery)
    """

    def __init__(
        self,
        config: Optional[ClientConfiguration] = None,
        store: Optional[ITokenStore] = None,
        sink: Optional[INotificationSink] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.config = config or ClientConfiguration()
        self._audit_logger = audit_logger or AuditLogger()

        self.session = SessionState()
        self.store = store or create_token_store(
            self.config.get_storage_backend(),
            self.config.get_storage_dir()
        )
        self.transports = TransportFactory(
            self.session,
            timeout=self.config.get_server_timeout(),
            cookie_file=self.config.get_cookie_file()
        )
        self.clients = ClientRegistry(self.transports)
        self.tokens = TokenProvider(
            self.session,
            self.store,
            authentication_client=self.clients.authentication,
            single_flight=self.config.is_single_flight_enabled(),
            audit_logger=self._audit_logger
        )
        self.errors = ErrorBoundary(sink, audit_logger=self._audit_logger)

        self.transports.set_token_resolver(self.tokens.get_token)
        self.set_url(self.config.get_server_url())

    def set_url(self, url: str) -> None:
        previous = self.session.url
        self.session.set_url(url)
        if previous != self.session.url:
            self._audit_logger.log_event(
                AuditEventType.SESSION_CHANGE,
                "Server URL changed",
                server_url=self.session.url,
                additional_context={'previous_url': previous}
            )

    def set_token(self, token: str) -> None:
        self.session.set_token(token)

    async def get_token(self) -> str:
        return await self.tokens.get_token()

    async def login(self, verifier: Verifier) -> str:
        return await self.tokens.login(verifier)

    async def logout(self) -> None:
        await self.tokens.logout()

    async def refresh_recovery(self) -> None:
        """Recovery action for unauthenticated failures: a refresh login."""
        await self.tokens.login(Empty())

    async def exec(
        self,
        action: Action,
        recovery: Optional[Recovery] = None,
        on_processing_change: Optional[ProcessingCallback] = None
    ) -> Optional[Any]:
        return await self.errors.exec(action, recovery, on_processing_change)

    async def close(self) -> None:
        """Release network resources."""
        await self.transports.close()
        logger.debug("Session manager closed")

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
