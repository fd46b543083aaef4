"""WebSocket API for live seat map updates."""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from boxoffice.api.v1.dependencies import BroadcasterDep
from boxoffice.clock import utcnow

router = APIRouter()
logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket viewers per showing."""

    def __init__(self):
        # showing_id -> list of websockets
        self.active_connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, showing_id: str) -> None:
        """Accept and register a connection."""
        await websocket.accept()
        self.active_connections.setdefault(showing_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, showing_id: str) -> None:
        """Remove a connection."""
        if showing_id in self.active_connections:
            self.active_connections[showing_id] = [
                ws for ws in self.active_connections[showing_id] if ws != websocket
            ]
            if not self.active_connections[showing_id]:
                del self.active_connections[showing_id]

    def viewer_count(self, showing_id: str) -> int:
        return len(self.active_connections.get(showing_id, []))


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/showings/{showing_id}")
async def websocket_seat_updates(
    websocket: WebSocket,
    showing_id: str,
    broadcaster: BroadcasterDep,
):
    """
    WebSocket endpoint for live seat updates of one showing.

    Messages are the JSON events published on the showing's channel:
    - lock: seats were locked, with `seat_ids` and `expires_at`
    - unlock: seats were released
    - booking_confirmed: seats now belong to a confirmed booking

    Send `{"type": "ping"}` to receive a pong.
    """
    await manager.connect(websocket, showing_id)
    logger.debug(f"Viewer joined {showing_id} ({manager.viewer_count(showing_id)} watching)")

    try:
        async with broadcaster.subscribe(showing_id) as pubsub:
            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is not None:
                    await websocket.send_text(message["data"])

                try:
                    data = await asyncio.wait_for(websocket.receive_text(), timeout=0.1)
                    client_msg = json.loads(data)
                    if client_msg.get("type") == "ping":
                        await websocket.send_text(
                            json.dumps({"type": "pong", "timestamp": utcnow().isoformat()})
                        )
                except asyncio.TimeoutError:
                    pass
                except json.JSONDecodeError:
                    continue

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for showing {showing_id}: {e}")
    finally:
        manager.disconnect(websocket, showing_id)
