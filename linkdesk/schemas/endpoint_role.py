"""Endpoint roles within a signaling session."""

from enum import Enum


class EndpointRole(str, Enum):
    """Role of a connection relative to a session.

    State Transition Flow:

    UNBOUND → HOST        (create-session)
    UNBOUND → CONTROLLER  (successful join-session)

    A bound endpoint returns to UNBOUND only when it disconnects or when it
    creates/joins another session, which first detaches the old binding.
    """

    UNBOUND = "unbound"
    HOST = "host"
    CONTROLLER = "controller"

    def __str__(self) -> str:
        return self.value


__all__ = ["EndpointRole"]
