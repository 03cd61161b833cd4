"""Wire and state schemas shared by the signaling domain and transport."""

from .endpoint_role import EndpointRole
from .messages import (
    IceConfigMessage,
    IceConfiguration,
    IceServer,
    MessageType,
    SessionNotice,
    session_notice,
)

__all__ = [
    "EndpointRole",
    "IceConfigMessage",
    "IceConfiguration",
    "IceServer",
    "MessageType",
    "SessionNotice",
    "session_notice",
]
