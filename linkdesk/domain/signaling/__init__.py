from ._code_generator import CODE_ALPHABET, CODE_LENGTH, CodeGenerator, normalize_code
from ._lifecycle import ConnectionLifecycle
from ._registry import SessionRegistry
from ._relay import RelayEngine, parse_message
from .endpoint import Delivery, Endpoint, deliver
from .session_models import EndpointBinding, Session
from .signaling_domain import SignalingService

__all__ = [
    "CODE_ALPHABET",
    "CODE_LENGTH",
    "CodeGenerator",
    "ConnectionLifecycle",
    "Delivery",
    "Endpoint",
    "EndpointBinding",
    "RelayEngine",
    "Session",
    "SessionRegistry",
    "SignalingService",
    "deliver",
    "normalize_code",
    "parse_message",
]
