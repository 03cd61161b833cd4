"""Signaling service - owns the registry, broker, engine and lifecycle of one server."""

from loguru import logger

from linkdesk.app_config import AppEnvironConfig, get_app_environ_config
from linkdesk.services.integrations.ice_broker import IceCredentialBroker

from ._code_generator import CodeGenerator
from ._lifecycle import ConnectionLifecycle
from ._registry import SessionRegistry
from ._relay import RelayEngine
from .endpoint import Endpoint, deliver


class SignalingService:
    """Entry point used by the transport layer.

    One instance lives for the whole server run; it is created in the app
    lifespan and closed at shutdown. Nothing is persisted.
    """

    def __init__(
        self,
        cfg: AppEnvironConfig | None = None,
        *,
        broker: IceCredentialBroker | None = None,
        code_generator: CodeGenerator | None = None,
    ) -> None:
        self._cfg = cfg or get_app_environ_config()
        self.registry = SessionRegistry(
            code_generator=code_generator,
            max_code_attempts=self._cfg.SESSION_CODE_MAX_ATTEMPTS,
        )
        self.broker = broker or IceCredentialBroker(self._cfg)
        self.lifecycle = ConnectionLifecycle(self.registry)
        self.engine = RelayEngine(self.registry, self.lifecycle, self.broker)

    # ==================== CONNECTIONS ====================

    def on_connect(self, endpoint: Endpoint) -> None:
        self.lifecycle.connect(endpoint)

    async def on_message(self, endpoint: Endpoint, raw: str) -> None:
        await self.engine.handle(endpoint, raw)

    async def on_disconnect(self, endpoint: Endpoint) -> None:
        await deliver(self.lifecycle.disconnect(endpoint))

    # ==================== TEARDOWN ====================

    def close(self) -> None:
        logger.info(
            f"Signaling service closing: sessions={len(self.registry)} "
            f"connections={len(self.lifecycle)}"
        )
        self.registry.clear()
