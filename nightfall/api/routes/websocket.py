"""WebSocket API routes."""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Server-push endpoint for game events.

    Client sends:
    - {"action": "ping"}

    Server sends:
    - {"type": "connected", "connections": 3}
    - {"type": "pong"}
    - {"type": "game_created" | "game_joined" | "game_completed" | "game_cancelled", "data": {...}, "timestamp": "..."}
    - {"type": "error", "message": "...", "code": "..."}
    """
    connections = websocket.app.state.connections
    await connections.connect(websocket)
    await websocket.send_json(
        {"type": "connected", "connections": connections.get_total_connections()}
    )

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({
                    "type": "error",
                    "message": "Invalid JSON",
                    "code": "INVALID_JSON",
                })
                continue

            action = message.get("action") if isinstance(message, dict) else None
            if action == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                    "code": "UNKNOWN_ACTION",
                })

    except WebSocketDisconnect:
        connections.disconnect(websocket)
        logger.debug("WebSocket disconnected")

    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        connections.disconnect(websocket)
