# volunteer_board/api/v1/endpoints/realtime.py
"""Live view streams over WebSocket"""
import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger

from volunteer_board.auth.dependencies import get_websocket_store
from volunteer_board.db.record_store import RecordStore
from volunteer_board.realtime.fanout import ListChange
from volunteer_board.realtime.views import VIEW_NAMES, build_view

router = APIRouter()


@router.websocket("/views/{view_name}")
async def stream_view(
    websocket: WebSocket,
    view_name: str,
    volunteer_id: Optional[str] = Query(None, description="Viewer, required for the dashboard view"),
    store: RecordStore = Depends(get_websocket_store)
):
    """
    Send the view's current list as a ``reset`` change, then every
    insert/remove/replace as it happens.
    """
    if view_name not in VIEW_NAMES or (view_name == "dashboard" and not volunteer_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()
    view = build_view(store, view_name, volunteer_id)
    view.add_listener(outbox.put_nowait)

    async def send_changes():
        while True:
            changes: List[ListChange] = await outbox.get()
            await websocket.send_json({
                "view": view_name,
                "changes": [change.model_dump(mode="json") for change in changes]
            })

    async def wait_for_disconnect():
        while True:
            await websocket.receive_text()

    tasks = []
    try:
        await view.start()
        tasks = [asyncio.create_task(send_changes()), asyncio.create_task(wait_for_disconnect())]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning(f"Live view stream {view_name} ended: {error}")
    except WebSocketDisconnect:
        pass
    finally:
        view.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(f"Live view stream {view_name} closed")
