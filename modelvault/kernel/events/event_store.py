"""
Append-only audit log.

Services log through here inside their own transaction, so an event is
persisted exactly when the change it describes is committed.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.errors import OperationError
from modelvault.kernel.models.event_log import EventLog, EventType


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class EventStore:
    """
    Writer and reader for ``EventLog`` rows.

    Usage:
        await EventStore(session).log(
            event_type=EventType.ARTIFACT_CREATED,
            entity_type="artifact",
            entity_id=artifact.id,
            username=principal.username,
            payload={"hash": artifact.current_hash},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        username: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        """
        Stage an event on the session. Nothing is flushed or committed.

        ``entity_id`` is a composite resource id, a username, or ``*`` for
        store-wide events such as a garbage collection sweep.
        """
        event = EventLog(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            username=username,
            payload=_jsonable(payload or {}),
        )
        self.session.add(event)
        return event

    async def history(
        self,
        entity_id: str,
        *,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Events recorded for one entity, oldest first."""
        query = select(EventLog).where(EventLog.entity_id == entity_id)
        if event_types:
            query = query.where(EventLog.event_type.in_(event_types))
        query = query.order_by(EventLog.created_at).limit(limit)

        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            raise OperationError(
                f"Reading event history of [{entity_id}] failed.", conflict=False, cause=exc
            ) from exc
        return list(result.scalars().all())
