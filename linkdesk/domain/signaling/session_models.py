"""Signaling session domain models."""

from dataclasses import dataclass

from linkdesk.schemas import EndpointRole

from .endpoint import Endpoint


@dataclass
class Session:
    """Pairing of one host and at most one controller under a shared code."""

    code: str
    host: Endpoint
    controller: Endpoint | None = None

    def peer_of(self, endpoint: Endpoint) -> Endpoint | None:
        """Return the opposite party for a bound member, None for strangers."""
        if endpoint is self.host:
            return self.controller
        if endpoint is self.controller:
            return self.host
        return None


@dataclass(frozen=True)
class EndpointBinding:
    """The single (role, code) pair an endpoint may carry."""

    code: str
    role: EndpointRole
