# volunteer_board/db/record_store.py
"""
Record store: durable storage for tasks, volunteers and completions plus the
change feed that announces every write.

Each call runs in its own session and commits on its own; there is no
multi-record transaction. Callers that chain writes (the crediting engine)
order them and report partial failure themselves.
"""
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type, Union

from sqlalchemy import func
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.future import select
from loguru import logger

from volunteer_board.api.v1.schemas.completions import CompletionRecord
from volunteer_board.api.v1.schemas.hours import HoursRecord
from volunteer_board.api.v1.schemas.tasks import TaskRecord
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.core.pagination import PaginationParams
from volunteer_board.core.query import RecordFilter, SortSpec
from volunteer_board.db.models import ChangeAction, Completion, Task, TaskAssignment, Volunteer, VolunteerHours
from volunteer_board.exceptions.board import NotFoundError
from volunteer_board.realtime.change_feed import ChangeEvent, ChangeFeed, ChangeHandler, ErrorHandler, Unsubscribe

# collection name -> (ORM model, immutable record type)
COLLECTIONS: Dict[str, Tuple[Type, Type]] = {
    "tasks": (Task, TaskRecord),
    "volunteers": (Volunteer, VolunteerRecord),
    "completions": (Completion, CompletionRecord),
    "volunteer_hours": (VolunteerHours, HoursRecord),
}

SortArg = Union[str, SortSpec, None]


class RecordStore(Protocol):
    """What the engines and live views need from storage"""

    async def get(self, collection: str, record_id: str) -> Optional[Any]: ...

    async def list(
        self,
        collection: str,
        filter: Optional[RecordFilter] = None,
        sort: SortArg = None,
        page: Optional[PaginationParams] = None
    ) -> List[Any]: ...

    async def count(self, collection: str, filter: Optional[RecordFilter] = None) -> int: ...

    async def create(self, collection: str, fields: Dict[str, Any]) -> Any: ...

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> Any: ...

    async def delete(self, collection: str, record_id: str) -> Any: ...

    def subscribe(
        self,
        collection: str,
        handler: ChangeHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> Unsubscribe: ...


def _resolve(collection: str) -> Tuple[Type, Type]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection '{collection}'")


def _check_filter(collection: str, filter: Optional[RecordFilter]):
    if filter is not None and filter.collection != collection:
        raise ValueError(f"{type(filter).__name__} cannot filter {collection}")


def _assignments(task: Task, volunteer_ids) -> List[TaskAssignment]:
    existing = {a.volunteer_id: a for a in task.assignments}
    return [existing.get(v) or TaskAssignment(volunteer_id=v) for v in sorted(volunteer_ids)]


class SqlRecordStore:
    """SQLAlchemy implementation of ``RecordStore`` publishing to a ``ChangeFeed``"""

    def __init__(self, session_factory: async_sessionmaker, feed: ChangeFeed):
        self.session_factory = session_factory
        self.feed = feed

    async def get(self, collection: str, record_id: str) -> Optional[Any]:
        """Get one record by id, or None"""
        model, record_type = _resolve(collection)
        async with self.session_factory() as session:
            instance = await session.get(model, record_id)
            return record_type.from_model(instance) if instance is not None else None

    async def list(
        self,
        collection: str,
        filter: Optional[RecordFilter] = None,
        sort: SortArg = None,
        page: Optional[PaginationParams] = None
    ) -> List[Any]:
        """List records matching ``filter`` in ``sort`` order (id breaks ties)"""
        model, record_type = _resolve(collection)
        _check_filter(collection, filter)
        spec = sort if isinstance(sort, SortSpec) else SortSpec.parse(collection, sort)

        query = select(model)
        if filter is not None:
            query = query.filter(*filter.clauses())
        query = query.order_by(*spec.order_by(model))
        if page is not None:
            query = query.offset(page.offset).limit(page.size)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [record_type.from_model(row) for row in result.scalars().all()]

    async def count(self, collection: str, filter: Optional[RecordFilter] = None) -> int:
        model, _ = _resolve(collection)
        _check_filter(collection, filter)

        query = select(func.count()).select_from(model)
        if filter is not None:
            query = query.filter(*filter.clauses())

        async with self.session_factory() as session:
            return await session.scalar(query) or 0

    async def create(self, collection: str, fields: Dict[str, Any]) -> Any:
        """Insert a record and publish ``create``"""
        model, record_type = _resolve(collection)
        fields = dict(fields)
        assignees = fields.pop("assigned_to", None) if model is Task else None

        async with self.session_factory() as session:
            try:
                instance = model(**fields)
                if assignees:
                    instance.assignments = [TaskAssignment(volunteer_id=v) for v in sorted(assignees)]
                session.add(instance)
                await session.commit()
                record = record_type.from_model(await self._reload(session, model, instance.id))
            except Exception as e:
                await session.rollback()
                logger.error(f"Failed to create record in {collection}: {e}")
                raise

        logger.debug(f"Created {collection} record {record.id}")
        self.feed.publish(ChangeEvent(action=ChangeAction.CREATE, collection=collection, record=record))
        return record

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> Any:
        """Apply ``fields`` to one record and publish ``update``; NotFoundError if missing"""
        model, record_type = _resolve(collection)
        fields = dict(fields)
        assignees = fields.pop("assigned_to", None) if model is Task else None

        async with self.session_factory() as session:
            try:
                instance = await session.get(model, record_id)
                if instance is None:
                    raise NotFoundError(collection, record_id)

                for key, value in fields.items():
                    if key in ("id", "created_at", "updated_at") or not hasattr(model, key):
                        raise ValueError(f"Field '{key}' cannot be updated on {collection}")
                    setattr(instance, key, value)
                if assignees is not None:
                    instance.assignments = _assignments(instance, assignees)
                instance.updated_at = func.now()

                await session.commit()
                record = record_type.from_model(await self._reload(session, model, record_id))
            except NotFoundError:
                raise
            except Exception as e:
                await session.rollback()
                logger.error(f"Failed to update {collection} record {record_id}: {e}")
                raise

        logger.debug(f"Updated {collection} record {record_id}")
        self.feed.publish(ChangeEvent(action=ChangeAction.UPDATE, collection=collection, record=record))
        return record

    async def delete(self, collection: str, record_id: str) -> Any:
        """Delete one record and publish ``delete`` with its last state"""
        model, record_type = _resolve(collection)

        async with self.session_factory() as session:
            try:
                instance = await session.get(model, record_id)
                if instance is None:
                    raise NotFoundError(collection, record_id)
                record = record_type.from_model(instance)
                await session.delete(instance)
                await session.commit()
            except NotFoundError:
                raise
            except Exception as e:
                await session.rollback()
                logger.error(f"Failed to delete {collection} record {record_id}: {e}")
                raise

        logger.info(f"Deleted {collection} record {record_id}")
        self.feed.publish(ChangeEvent(action=ChangeAction.DELETE, collection=collection, record=record))
        return record

    def subscribe(
        self,
        collection: str,
        handler: ChangeHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> Unsubscribe:
        _resolve(collection)
        return self.feed.subscribe(collection, handler, on_error)

    @staticmethod
    async def _reload(session, model, record_id: str):
        # Pick up server-side defaults so the record matches a fresh read
        result = await session.execute(
            select(model)
            .filter(model.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()
