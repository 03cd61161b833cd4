from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger
from starlette.websockets import WebSocketState

from linkdesk.domain.signaling import Endpoint, SignalingService

router = APIRouter()


class WebSocketEndpoint(Endpoint):
    """Adapts a FastAPI WebSocket to the signaling core."""

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__()
        self._websocket = websocket

    def _transport_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def _send_text(self, text: str) -> None:
        await self._websocket.send_text(text)


def _frame_text(message: dict) -> str | None:
    if message.get("text") is not None:
        return message["text"]
    if message.get("bytes") is not None:
        return message["bytes"].decode("utf-8", errors="replace")
    return None


@router.websocket("/")
@router.websocket("/ws")
async def signaling_socket(websocket: WebSocket):
    service: SignalingService = websocket.app.state.signaling

    await websocket.accept()
    endpoint = WebSocketEndpoint(websocket)
    service.on_connect(endpoint)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = _frame_text(message)
            if raw is None:
                continue
            await service.on_message(endpoint, raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.error(f"[{endpoint.endpoint_id}] WebSocket error: {type(exc).__name__}: {exc}")
    finally:
        await service.on_disconnect(endpoint)
