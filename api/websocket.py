"""WebSocket endpoint pushing agent broadcasts to listening contexts."""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger("api.websocket")

router = APIRouter(tags=["websocket"])


@router.websocket("/api/ws/broadcast")
async def broadcast_updates(websocket: WebSocket):
    """Forward every broadcast delta to the connected client."""
    agent = websocket.app.state.agent
    await websocket.accept()
    queue = agent.broadcaster.subscribe()
    logger.info(f"[WebSocket] Listener connected ({agent.broadcaster.subscriber_count} total)")

    async def forward():
        while True:
            message = await queue.get()
            await websocket.send_json({"type": "broadcast", "data": message})

    forward_task = None
    try:
        await websocket.send_json({"type": "connected", "state": agent.state})
        forward_task = asyncio.create_task(forward())
        # Listeners do not talk back; this only waits for the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("[WebSocket] Listener disconnected")
    except Exception as e:
        logger.error(f"[WebSocket] Error: {e}")
    finally:
        if forward_task is not None:
            forward_task.cancel()
        agent.broadcaster.unsubscribe(queue)
