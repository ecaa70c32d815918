from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import NotFoundError
from .models import CalendarDestination, CalendarItem, ScheduleTarget

TimeRange = Tuple[datetime, datetime]

# Keys a store accepts in create/update field dicts.
ITEM_FIELDS = (
    "title",
    "start_time",
    "due_or_end_time",
    "is_all_day",
    "location",
    "notes",
    "completed",
)


class AuthorizationStatus(str, Enum):
    AUTHORIZED = "authorized"
    WRITE_ONLY = "write_only"
    DENIED = "denied"
    NOT_DETERMINED = "not_determined"

    @property
    def can_read(self) -> bool:
        return self is AuthorizationStatus.AUTHORIZED

    @property
    def can_write(self) -> bool:
        return self in (AuthorizationStatus.AUTHORIZED, AuthorizationStatus.WRITE_ONLY)


class CalendarStore(ABC):
    """The external calendar/reminder store the pipeline reads and mutates."""

    @abstractmethod
    async def authorization_status(self, kind: ScheduleTarget) -> AuthorizationStatus:
        ...

    @abstractmethod
    async def list_destinations(self, kind: ScheduleTarget) -> List[CalendarDestination]:
        ...

    @abstractmethod
    async def default_destination(self, kind: ScheduleTarget) -> Optional[CalendarDestination]:
        ...

    @abstractmethod
    async def list_items(self,
                         kind: ScheduleTarget,
                         time_range: Optional[TimeRange] = None,
                         calendar_ids: Optional[Iterable[str]] = None) -> List[CalendarItem]:
        ...

    @abstractmethod
    async def create(self, kind: ScheduleTarget, fields: Dict[str, Any],
                     destination: CalendarDestination) -> str:
        ...

    @abstractmethod
    async def update(self, kind: ScheduleTarget, identifier: str,
                     fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def remove(self, kind: ScheduleTarget, identifier: str) -> None:
        ...


def _item_overlaps(item: CalendarItem, time_range: TimeRange) -> bool:
    start = item.start_time or item.due_or_end_time
    if start is None:
        return False
    end = item.due_or_end_time or start
    range_start, range_end = time_range
    return start <= range_end and end >= range_start


def _sort_key(item: CalendarItem) -> Tuple[int, float]:
    anchor = item.start_time or item.due_or_end_time
    if anchor is None:
        return (1, 0.0)
    return (0, anchor.timestamp())


class InMemoryCalendarStore(CalendarStore):
    """Process-local store used in local mode and by the tests.

    Items are kept per kind in insertion order and returned sorted by start
    (or due) time, items without a time last.
    """

    def __init__(self,
                 destinations: Optional[Iterable[CalendarDestination]] = None,
                 items: Optional[Iterable[CalendarItem]] = None,
                 authorization: Optional[Dict[ScheduleTarget, AuthorizationStatus]] = None) -> None:
        self.destinations: List[CalendarDestination] = list(destinations or [])
        self.items: Dict[ScheduleTarget, List[CalendarItem]] = {
            ScheduleTarget.EVENT: [],
            ScheduleTarget.REMINDER: [],
        }
        for item in items or []:
            self.items[item.kind].append(item)
        self.authorization: Dict[ScheduleTarget, AuthorizationStatus] = {
            ScheduleTarget.EVENT: AuthorizationStatus.AUTHORIZED,
            ScheduleTarget.REMINDER: AuthorizationStatus.AUTHORIZED,
        }
        if authorization:
            self.authorization.update(authorization)

    async def authorization_status(self, kind: ScheduleTarget) -> AuthorizationStatus:
        return self.authorization.get(kind, AuthorizationStatus.NOT_DETERMINED)

    async def list_destinations(self, kind: ScheduleTarget) -> List[CalendarDestination]:
        return [d for d in self.destinations if d.kind is kind]

    async def default_destination(self, kind: ScheduleTarget) -> Optional[CalendarDestination]:
        for destination in self.destinations:
            if destination.kind is kind and destination.is_default:
                return destination
        return None

    async def list_items(self,
                         kind: ScheduleTarget,
                         time_range: Optional[TimeRange] = None,
                         calendar_ids: Optional[Iterable[str]] = None) -> List[CalendarItem]:
        wanted = set(calendar_ids) if calendar_ids else None
        selected: List[CalendarItem] = []
        for item in self.items[kind]:
            if wanted is not None and item.calendar_id not in wanted:
                continue
            if time_range is not None and not _item_overlaps(item, time_range):
                continue
            selected.append(copy.deepcopy(item))
        return sorted(selected, key=_sort_key)

    async def create(self, kind: ScheduleTarget, fields: Dict[str, Any],
                     destination: CalendarDestination) -> str:
        identifier = uuid.uuid4().hex
        values = {k: v for k, v in fields.items() if k in ITEM_FIELDS}
        item = CalendarItem(identifier=identifier,
                            kind=kind,
                            calendar_id=destination.id,
                            **values)
        self.items[kind].append(item)
        return identifier

    def _find(self, kind: ScheduleTarget, identifier: str) -> int:
        for index, item in enumerate(self.items[kind]):
            if item.identifier == identifier:
                return index
        raise NotFoundError(f"No {kind.label} with id {identifier}.")

    async def update(self, kind: ScheduleTarget, identifier: str,
                     fields: Dict[str, Any]) -> None:
        index = self._find(kind, identifier)
        values = {k: v for k, v in fields.items() if k in ITEM_FIELDS}
        self.items[kind][index] = self.items[kind][index].model_copy(update=values)

    async def remove(self, kind: ScheduleTarget, identifier: str) -> None:
        index = self._find(kind, identifier)
        del self.items[kind][index]


def build_local_store() -> InMemoryCalendarStore:
    return InMemoryCalendarStore(destinations=[
        CalendarDestination(id="local", title="Calendar",
                            kind=ScheduleTarget.EVENT, is_default=True),
        CalendarDestination(id="local-reminders", title="Reminders",
                            kind=ScheduleTarget.REMINDER, is_default=True),
    ])
