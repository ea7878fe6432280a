"""WebSocket endpoint pushing spec lifecycle events to dashboard observers.

Messages (server -> client), each {"type", "data", "timestamp"}:
    - connection_ack: sent once on connect, data carries client_id
    - spec_created / spec_updated / spec_deleted / spec_status_changed
    - stats_updated: counts per status after a change
    - ping: heartbeat; any reply keeps the connection alive
    - pong: answer to a client ping

Messages (client -> server):
    - {"type": "ping"} or {"type": "pong"}
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from spec_mcp.notifications import CLOSE_TRY_AGAIN_LATER, NotificationHub, Observer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Normal closure initiated by the server
CLOSE_GOING_AWAY = 1001


async def _send_messages(websocket: WebSocket, observer: Observer) -> None:
    try:
        while True:
            message = await observer.queue.get()
            if message is None:
                await websocket.close(code=CLOSE_GOING_AWAY)
                return
            await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.debug("Observer %s went away while sending", observer.client_id)


async def _receive_messages(
    websocket: WebSocket, hub: NotificationHub, observer: Observer
) -> None:
    try:
        while True:
            hub.handle_message(observer, await websocket.receive_text())
    except WebSocketDisconnect:
        logger.debug("Observer %s closed the connection", observer.client_id)


@router.websocket("/ws")
async def websocket_events(websocket: WebSocket) -> None:
    hub: NotificationHub = websocket.app.state.hub

    await websocket.accept()
    observer = hub.connect()
    if observer is None:
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Too many connections")
        return

    tasks = [
        asyncio.create_task(_send_messages(websocket, observer)),
        asyncio.create_task(_receive_messages(websocket, hub, observer)),
    ]
    try:
        # Whichever side finishes first ends the connection
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        hub.disconnect(observer.client_id)
