"""Connection handles and outbound delivery."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import orjson
from loguru import logger


class Endpoint(ABC):
    """One participant connection as seen by the signaling core.

    Subclasses adapt a concrete transport. The core only needs identity,
    liveness and a send that never raises.
    """

    def __init__(self, endpoint_id: str | None = None) -> None:
        self.endpoint_id = endpoint_id or uuid4().hex[:8]
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self._transport_open()

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, payload: dict[str, Any] | str) -> bool:
        """Send a JSON object, or an already encoded text frame, if the endpoint is open.

        Returns False when the endpoint was closed or the transport failed;
        the failure is logged and never propagated.
        """
        if not self.is_open:
            logger.debug(f"[{self.endpoint_id}] send skipped, endpoint closed")
            return False

        text = payload if isinstance(payload, str) else orjson.dumps(payload).decode()
        try:
            await self._send_text(text)
        except Exception as exc:
            logger.warning(f"[{self.endpoint_id}] send failed: {type(exc).__name__}: {exc}")
            self._closed = True
            return False
        return True

    @abstractmethod
    def _transport_open(self) -> bool: ...

    @abstractmethod
    async def _send_text(self, text: str) -> None: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.endpoint_id}>"


@dataclass(frozen=True)
class Delivery:
    """An outbound frame addressed to one endpoint."""

    endpoint: Endpoint
    payload: dict[str, Any] | str


async def deliver(deliveries: Iterable[Delivery]) -> int:
    """Send each delivery in order; returns how many reached an open endpoint."""
    sent = 0
    for delivery in deliveries:
        if await delivery.endpoint.send(delivery.payload):
            sent += 1
    return sent
