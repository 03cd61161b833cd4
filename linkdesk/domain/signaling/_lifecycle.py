from loguru import logger

from linkdesk.schemas import EndpointRole, MessageType, session_notice

from ._registry import SessionRegistry
from .endpoint import Delivery, Endpoint


class ConnectionLifecycle:
    """Tracks open connections and reconciles the registry when they go away."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        self._connections: dict[str, Endpoint] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def connect(self, endpoint: Endpoint) -> None:
        self._connections[endpoint.endpoint_id] = endpoint
        logger.info(f"[{endpoint.endpoint_id}] client connected ({len(self._connections)} open)")

    def role_of(self, endpoint: Endpoint) -> EndpointRole:
        binding = self._registry.find_by_endpoint(endpoint)
        return binding.role if binding else EndpointRole.UNBOUND

    def disconnect(self, endpoint: Endpoint) -> list[Delivery]:
        """Close `endpoint` and return the notices owed to its surviving peer."""
        endpoint.mark_closed()
        self._connections.pop(endpoint.endpoint_id, None)
        logger.info(f"[{endpoint.endpoint_id}] client disconnected ({len(self._connections)} open)")
        return self.detach(endpoint)

    def detach(self, endpoint: Endpoint) -> list[Delivery]:
        """Drop whatever session binding `endpoint` carries.

        Controller: the slot is released and the host is told `controller-left`.
        Host: the session is removed and the controller is told `host-left`.
        Unbound: nothing happens.
        """
        binding = self._registry.find_by_endpoint(endpoint)
        if binding is None:
            return []

        if binding.role == EndpointRole.CONTROLLER:
            session = self._registry.release_controller(binding.code)
            if session is None:
                return []
            return [
                Delivery(session.host, session_notice(MessageType.CONTROLLER_LEFT, binding.code))
            ]

        session = self._registry.remove_by_host_disconnect(binding.code)
        if session is None or session.controller is None:
            return []
        return [
            Delivery(session.controller, session_notice(MessageType.HOST_LEFT, binding.code))
        ]
