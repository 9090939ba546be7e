"""
Service client registry.

One accessor per RPC service. Clients are cached per transport generation and
rebuilt only when the TransportFactory derives new transports; accessors never
perform I/O.
"""

import logging
from typing import Dict, Optional

from zen_shared.models import ServiceDescriptor
from zen_client.services import (
    ServiceClient, create_client,
    AuthenticationService, ManagementService, PlanningService, TimingService
)
from zen_client.transport import TransportFactory

logger = logging.getLogger(__name__)


class ClientRegistry:
    """Derives typed service clients from the current transports."""

    def __init__(self, transports: TransportFactory):
        self.transports = transports
        self._generation: Optional[int] = None
        self._clients: Dict[str, ServiceClient] = {}

    def _client(self, service: ServiceDescriptor, authenticated: bool = True) -> ServiceClient:
        generation = self.transports.generation
        if generation != self._generation:
            self._clients.clear()
            self._generation = generation

        client = self._clients.get(service.type_name)
        if client is None:
            transport = (
                self.transports.authenticated() if authenticated
                else self.transports.unauthenticated()
            )
            client = create_client(service, transport)
            self._clients[service.type_name] = client
        return client

    def authentication(self) -> ServiceClient:
        """AuthenticationService client; never carries an authorization header."""
        return self._client(AuthenticationService, authenticated=False)

    def management(self) -> ServiceClient:
        return self._client(ManagementService)

    def planning(self) -> ServiceClient:
        return self._client(PlanningService)

    def timing(self) -> ServiceClient:
        return self._client(TimingService)

    def get(self, name: str) -> ServiceClient:
        """Look a client up by short service name (``management``)."""
        accessors = {
            'authentication': self.authentication,
            'management': self.management,
            'planning': self.planning,
            'timing': self.timing,
        }
        if name not in accessors:
            raise KeyError(f"Unknown service: {name}")
        return accessors[name]()
