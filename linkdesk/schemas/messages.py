"""Wire messages exchanged over the signaling WebSocket."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageType(str, Enum):
    """Values of the `type` field understood or produced by the server.

    Inbound control messages:
    - GET_ICE: request an ICE configuration; no session needed.
    - CREATE_SESSION: become the host of a new session.
    - JOIN_SESSION: become the controller of an existing session.

    Any other inbound `type` carrying a `code` is relayed untouched.

    Outbound notifications:
    - ICE_CONFIG, SESSION_CREATED, JOIN_SUCCESS, JOIN_FAILED,
      CONTROLLER_JOINED, CONTROLLER_LEFT, HOST_LEFT.
    """

    GET_ICE = "get-ice"
    CREATE_SESSION = "create-session"
    JOIN_SESSION = "join-session"

    ICE_CONFIG = "ice-config"
    SESSION_CREATED = "session-created"
    JOIN_SUCCESS = "join-success"
    JOIN_FAILED = "join-failed"
    CONTROLLER_JOINED = "controller-joined"
    CONTROLLER_LEFT = "controller-left"
    HOST_LEFT = "host-left"

    def __str__(self) -> str:
        return self.value


class IceServer(BaseModel):
    """One NAT-traversal server descriptor in RTCIceServer shape."""

    urls: str | list[str]
    username: str | None = None
    credential: str | None = None


class IceConfiguration(BaseModel):
    ice_servers: list[IceServer] = Field(default_factory=list)
    # Set only on the degraded STUN-only fallback
    warning: str | None = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None


class SessionNotice(BaseModel):
    """Outbound control frame addressed by session code."""

    type: MessageType
    code: str


class IceConfigMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: MessageType = MessageType.ICE_CONFIG
    ice_servers: list[IceServer] = Field(alias="iceServers")
    warning: str | None = None

    @classmethod
    def from_configuration(cls, ice: IceConfiguration) -> "IceConfigMessage":
        return cls(ice_servers=ice.ice_servers, warning=ice.warning)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def session_notice(message_type: MessageType, code: str) -> dict[str, Any]:
    return SessionNotice(type=message_type, code=code).model_dump(mode="json")


__all__ = [
    "IceConfigMessage",
    "IceConfiguration",
    "IceServer",
    "MessageType",
    "SessionNotice",
    "session_notice",
]
