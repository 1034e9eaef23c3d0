# volunteer_board/auth/dependencies.py
"""
Request-scoped dependencies.

Identity is established upstream (the reverse proxy or the identity provider
login); this service only reads the resolved volunteer id from the
``X-Volunteer-Id`` header and passes it explicitly to every operation.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, WebSocket, status
from loguru import logger

from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.core.crediting import CompletionCreditingEngine
from volunteer_board.core.hours import HoursService
from volunteer_board.core.lifecycle import TaskLifecycleEngine
from volunteer_board.core.volunteers import VolunteerService
from volunteer_board.db.record_store import RecordStore
from volunteer_board.integrations.notifier import NotificationDispatcher


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_websocket_store(websocket: WebSocket) -> RecordStore:
    return websocket.app.state.store


def get_notifier(request: Request) -> Optional[NotificationDispatcher]:
    return getattr(request.app.state, "notifier", None)


def get_lifecycle_engine(
        store: RecordStore = Depends(get_store),
        notifier: Optional[NotificationDispatcher] = Depends(get_notifier)
) -> TaskLifecycleEngine:
    return TaskLifecycleEngine(store, notifier)


def get_crediting_engine(
        store: RecordStore = Depends(get_store),
        notifier: Optional[NotificationDispatcher] = Depends(get_notifier)
) -> CompletionCreditingEngine:
    return CompletionCreditingEngine(store, notifier)


def get_volunteer_service(store: RecordStore = Depends(get_store)) -> VolunteerService:
    return VolunteerService(store)


def get_hours_service(store: RecordStore = Depends(get_store)) -> HoursService:
    return HoursService(store)


async def get_current_volunteer(
        x_volunteer_id: Optional[str] = Header(None, description="Resolved volunteer id of the caller"),
        store: RecordStore = Depends(get_store)
) -> VolunteerRecord:
    """
    Get the calling volunteer
    """
    if not x_volunteer_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Volunteer-Id header is required"
        )

    volunteer = await store.get("volunteers", x_volunteer_id)
    if volunteer is None:
        logger.warning(f"Unknown volunteer id presented | volunteer_id={x_volunteer_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown volunteer"
        )

    logger.debug(f"Caller identified | volunteer_id={volunteer.id}")
    return volunteer


async def get_optional_volunteer(
        x_volunteer_id: Optional[str] = Header(None),
        store: RecordStore = Depends(get_store)
) -> Optional[VolunteerRecord]:
    """Caller if identified; staff tools and the public display may be anonymous"""
    if not x_volunteer_id:
        return None
    return await get_current_volunteer(x_volunteer_id, store)
