# device_warnings/routers/websocket.py
"""
WebSocket endpoint streaming warning state changes to dashboards.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, WebSocket, Query
from starlette.websockets import WebSocketDisconnect

from device_warnings.schemas import WarningChange

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class DashboardConnection:
    def __init__(self, websocket: WebSocket, device_id: Optional[str] = None):
        self.websocket = websocket
        self.device_id = device_id

    def wants(self, change: WarningChange) -> bool:
        return self.device_id is None or self.device_id == change.device_id


# Global connections for the change feed relay
dashboard_connections: List[DashboardConnection] = []


async def broadcast_change(change: WarningChange) -> None:
    """Change feed subscriber: push one change to every interested dashboard."""
    payload = {"type": "warning_change", **change.model_dump(mode="json")}
    for connection in list(dashboard_connections):
        if not connection.wants(change):
            continue
        try:
            await connection.websocket.send_json(payload)
        except Exception as e:
            logger.warning("Dropping dashboard connection: %s", e)
            if connection in dashboard_connections:
                dashboard_connections.remove(connection)


@router.websocket("/ws/warnings")
async def warnings_websocket(
    websocket: WebSocket,
    device_id: Optional[str] = Query(None)
):
    await websocket.accept()
    connection = DashboardConnection(websocket, device_id)
    dashboard_connections.append(connection)
    logger.info("Dashboard connected (device filter: %s), %d open", device_id, len(dashboard_connections))

    try:
        while True:
            # Clients only listen; any message is treated as a keepalive
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        if connection in dashboard_connections:
            dashboard_connections.remove(connection)
        logger.info("Dashboard disconnected, %d open", len(dashboard_connections))
