from typing import Any

import orjson
from loguru import logger

from linkdesk.schemas import EndpointRole, IceConfigMessage, MessageType, session_notice
from linkdesk.services.integrations.ice_broker import IceCredentialBroker
from linkdesk.utils.app_errors import AppError, AppErrorCode, HttpStatusCode
from linkdesk.utils.logging import format_error

from ._code_generator import normalize_code
from ._lifecycle import ConnectionLifecycle
from ._registry import SessionRegistry
from .endpoint import Delivery, Endpoint, deliver

# Dropped frames that are part of normal operation, logged at debug level
_QUIET_DROPS = {
    AppErrorCode.E_SESSION_NOT_FOUND.value,
    AppErrorCode.E_PEER_UNAVAILABLE.value,
}


def parse_message(raw: str | bytes) -> dict[str, Any]:
    """Decode one inbound frame into a JSON object.

    Raises:
        AppError: E_PROTOCOL_ERROR for invalid JSON or a non-object payload
    """
    try:
        message = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise AppError(
            errcode=AppErrorCode.E_PROTOCOL_ERROR,
            errmesg=f"Bad JSON: {exc}",
        ) from exc

    if not isinstance(message, dict):
        raise AppError(
            errcode=AppErrorCode.E_PROTOCOL_ERROR,
            errmesg=f"Expected a JSON object, got {type(message).__name__}",
        )
    return message


def _code_of(message: dict[str, Any]) -> str:
    code = normalize_code(message.get("code"))
    if code is None:
        raise AppError(
            errcode=AppErrorCode.E_PROTOCOL_ERROR,
            errmesg=f"Session code must be a string, got {type(message.get('code')).__name__}",
        )
    return code


class RelayEngine:
    """Per-message state machine of the signaling server.

    Control messages (`get-ice`, `create-session`, `join-session`) are answered
    by the server; every other object that names a session code is forwarded
    verbatim to the other member of that session. Forwarded frames are never
    inspected and never acknowledged.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        lifecycle: ConnectionLifecycle,
        broker: IceCredentialBroker,
    ) -> None:
        self._registry = registry
        self._lifecycle = lifecycle
        self._broker = broker

    async def handle(self, endpoint: Endpoint, raw: str) -> None:
        """Process one inbound frame to completion. Never raises."""
        try:
            deliveries = await self.dispatch(endpoint, raw)
        except AppError as exc:
            if exc.errcode in _QUIET_DROPS:
                logger.debug(f"[{endpoint.endpoint_id}] dropped: {exc.errcode} {exc.errmesg}")
            else:
                logger.warning(
                    f"[{endpoint.endpoint_id}] dropped: {exc.errcode} {exc.erresid} "
                    f"{exc.errmesg} caller={exc.caller_info}"
                )
            return
        except Exception as exc:
            logger.error(
                f"[{endpoint.endpoint_id}] {AppErrorCode.E_INTERNAL_ERROR} while handling frame\n"
                f"{format_error(exc)}"
            )
            return

        await deliver(deliveries)

    async def dispatch(self, endpoint: Endpoint, raw: str) -> list[Delivery]:
        message = parse_message(raw)
        message_type = message.get("type")
        logger.debug(f"[{endpoint.endpoint_id}] message received: type={message_type}")

        if message_type == MessageType.GET_ICE.value:
            return await self._get_ice(endpoint)
        if message_type == MessageType.CREATE_SESSION.value:
            return self._create_session(endpoint)
        if message_type == MessageType.JOIN_SESSION.value:
            return self._join_session(endpoint, _code_of(message))
        return self._relay(endpoint, _code_of(message), raw)

    async def _get_ice(self, endpoint: Endpoint) -> list[Delivery]:
        # The requester may disconnect during the fetch; the send is then a no-op
        ice = await self._broker.get()
        return [Delivery(endpoint, IceConfigMessage.from_configuration(ice).to_wire())]

    def _create_session(self, endpoint: Endpoint) -> list[Delivery]:
        # Old binding is only torn down once a free code is in hand
        try:
            code = self._registry.draw_code()
        except AppError as exc:
            logger.error(f"[{endpoint.endpoint_id}] create failed: {exc.errcode} {exc.errmesg}")
            return []

        deliveries = self._lifecycle.detach(endpoint)
        code = self._registry.create(endpoint, code)
        deliveries.append(Delivery(endpoint, session_notice(MessageType.SESSION_CREATED, code)))
        return deliveries

    def _join_session(self, endpoint: Endpoint, code: str) -> list[Delivery]:
        try:
            self._registry.check_joinable(code, endpoint)
        except AppError as exc:
            logger.info(f"[{endpoint.endpoint_id}] join failed: {exc.errcode} {exc.errmesg}")
            return [Delivery(endpoint, session_notice(MessageType.JOIN_FAILED, code))]

        deliveries: list[Delivery] = []
        binding = self._registry.find_by_endpoint(endpoint)
        if binding is not None and not (
            binding.code == code and binding.role == EndpointRole.CONTROLLER
        ):
            deliveries.extend(self._lifecycle.detach(endpoint))

        session = self._registry.bind_controller(code, endpoint)
        deliveries.append(Delivery(endpoint, session_notice(MessageType.JOIN_SUCCESS, code)))
        deliveries.append(
            Delivery(session.host, session_notice(MessageType.CONTROLLER_JOINED, code))
        )
        return deliveries

    def _relay(self, endpoint: Endpoint, code: str, raw: str) -> list[Delivery]:
        session = self._registry.lookup(code)
        if session is None:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_FOUND,
                errmesg=f"Relay for unknown session {code!r}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        peer = session.peer_of(endpoint)
        if peer is None or not peer.is_open:
            raise AppError(
                errcode=AppErrorCode.E_PEER_UNAVAILABLE,
                errmesg=f"No connected peer for {endpoint.endpoint_id} in session {code}",
                status_code=HttpStatusCode.CONFLICT,
            )
        return [Delivery(peer, raw)]
