"""
RPC service contracts and typed service clients.

Each service is described by a ServiceDescriptor; ``create_client`` binds a
descriptor to a transport and exposes one coroutine method per RPC, named in
snake_case (``Login`` -> ``login``).
"""

import logging
from typing import Any, Dict, Optional

from zen_shared.models import (
    ServiceDescriptor, MethodDescriptor,
    LoginRequest, LoginResponse, LogoutRequest, LogoutResponse
)
from zen_client.transport import ConnectTransport

logger = logging.getLogger(__name__)


AuthenticationService = ServiceDescriptor(
    type_name="v1.manager.authentication.AuthenticationService",
    methods=(
        MethodDescriptor("Login", LoginRequest, LoginResponse),
        MethodDescriptor("Logout", LogoutRequest, LogoutResponse),
    )
)

ManagementService = ServiceDescriptor(
    type_name="v1.manager.management.ManagementService",
    methods=(
        MethodDescriptor("Register"),
        MethodDescriptor("Get"),
        MethodDescriptor("Update"),
        MethodDescriptor("Delete"),
    )
)

PlanningService = ServiceDescriptor(
    type_name="v1.scheduler.planning.PlanningService",
    methods=(
        MethodDescriptor("Get"),
        MethodDescriptor("Upsert"),
        MethodDescriptor("Delete"),
    )
)

TimingService = ServiceDescriptor(
    type_name="v1.scheduler.timing.TimingService",
    methods=(
        MethodDescriptor("Start"),
        MethodDescriptor("Stop"),
    )
)

SERVICES: Dict[str, ServiceDescriptor] = {
    'authentication': AuthenticationService,
    'management': ManagementService,
    'planning': PlanningService,
    'timing': TimingService,
}


class ServiceClient:
    """
    Client handle for one service, bound to one transport.

    Holds no state beyond that binding; method attributes are generated from
    the descriptor.
    """

    def __init__(self, service: ServiceDescriptor, transport: ConnectTransport):
        self.service = service
        self.transport = transport

        for method in service.methods:
            setattr(self, method.attribute_name, self._bind(method))

    def _bind(self, method: MethodDescriptor):
        async def call(request: Any = None, header: Optional[Dict[str, str]] = None,
                       timeout: Optional[float] = None) -> Any:
            return await self.call(method.name, request, header=header, timeout=timeout)
        call.__name__ = method.attribute_name
        call.__qualname__ = f"{self.service.type_name}.{method.name}"
        return call

    async def call(
        self,
        method_name: str,
        request: Any = None,
        header: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """
        Invoke a method by name.

        Args:
            method_name: RPC name (``Login``) or attribute name (``login``)
            request: Request message, or a dict for untyped methods
            header: Extra request headers
            timeout: Per-call timeout in seconds

        Returns:
            Response message, or a dict for untyped methods
        """
        method = self.service.method(method_name)

        if request is None:
            request = method.input_type() if method.input_type else {}
        message = request.to_dict() if hasattr(request, 'to_dict') else dict(request)

        response = await self.transport.unary(self.service, method, message, header=header, timeout=timeout)

        if method.output_type is not None:
            return method.output_type.from_dict(response.message)
        return response.message

    def __repr__(self) -> str:
        return f"<ServiceClient {self.service.type_name} via {self.transport.name}>"


def create_client(service: ServiceDescriptor, transport: ConnectTransport) -> ServiceClient:
    """Bind a service descriptor to a transport. Performs no I/O."""
    return ServiceClient(service, transport)
