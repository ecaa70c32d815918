from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AuthorizationError, NoDestinationError
from ..models import (
    CalendarDestination,
    CalendarItem,
    IntentType,
    Preferences,
    RunResult,
    ScheduleIntent,
    ScheduleTarget,
)
from ..state import CalendarStore
from ..utils import ImageInput, _log_debug
from .llm_provider import ModelGateway
from .resolve_event_target import resolve

logger = logging.getLogger(__name__)


def _create_fields(intent: ScheduleIntent) -> Dict[str, Any]:
  if intent.target is ScheduleTarget.REMINDER:
    # Reminders carry a single due time; all-day ones keep only the date.
    return {
        "title": intent.title,
        "notes": intent.notes,
        "start_time": None,
        "due_or_end_time": intent.start_date,
        "is_all_day": intent.is_all_day,
    }
  return {
      "title": intent.title,
      "start_time": intent.start_date,
      "due_or_end_time": intent.end_date,
      "is_all_day": intent.is_all_day,
      "location": intent.location,
      "notes": intent.notes,
  }


def _update_fields(intent: ScheduleIntent) -> Dict[str, Any]:
  if intent.target is ScheduleTarget.REMINDER:
    fields: Dict[str, Any] = {
        "title": intent.title,
        "due_or_end_time": intent.start_date,
        "is_all_day": intent.is_all_day,
    }
  else:
    fields = {
        "title": intent.title,
        "start_time": intent.start_date,
        "due_or_end_time": intent.end_date,
        "is_all_day": intent.is_all_day,
    }
    if intent.location is not None:
      fields["location"] = intent.location
  if intent.notes is not None:
    fields["notes"] = intent.notes
  return fields


class IntentApplier:
  """Commits a ScheduleIntent against the external store."""

  def __init__(self, store: CalendarStore) -> None:
    self.store = store

  async def _require_access(self, kind: ScheduleTarget, *, read: bool) -> None:
    status = await self.store.authorization_status(kind)
    allowed = status.can_read if read else status.can_write
    if not allowed:
      verb = "read" if read else "write"
      raise AuthorizationError(f"No {kind.label} access: cannot {verb} {kind.label}s.")

  async def resolve_destination(self,
                                kind: ScheduleTarget,
                                preferences: Preferences,
                                destination_override: Optional[str] = None) -> CalendarDestination:
    available = await self.store.list_destinations(kind)
    by_id = {d.id: d for d in available}

    if destination_override:
      if destination_override in by_id:
        return by_id[destination_override]
      _log_debug(f"[APPLY] destination {destination_override!r} not available for {kind.label}")
    preferred = preferences.default_destination_for(kind)
    if preferred and preferred in by_id:
      return by_id[preferred]

    system_default = await self.store.default_destination(kind)
    if system_default is not None:
      return system_default
    if available:
      return available[0]
    raise NoDestinationError(
        f"No valid {kind.label} calendar found. Please verify your calendar access.")

  async def snapshot(self, intent: ScheduleIntent,
                     preferences: Preferences) -> List[CalendarItem]:
    if intent.target is ScheduleTarget.REMINDER:
      selected = preferences.selected_ids_for(ScheduleTarget.REMINDER)
      return await self.store.list_items(ScheduleTarget.REMINDER,
                                         calendar_ids=selected or None)
    window = intent.target.search_window(intent.type, intent.start_date)
    return await self.store.list_items(ScheduleTarget.EVENT, time_range=window)

  async def add(self, intent: ScheduleIntent, preferences: Preferences,
                destination_override: Optional[str] = None) -> str:
    await self._require_access(intent.target, read=False)
    destination = await self.resolve_destination(intent.target, preferences,
                                                 destination_override)
    identifier = await self.store.create(intent.target, _create_fields(intent), destination)
    logger.info("Created %s %s in %s", intent.target.label, identifier, destination.id)
    return f"Added {intent.target.label}: {intent.title}"

  async def modify(self, intent: ScheduleIntent, preferences: Preferences) -> str:
    await self._require_access(intent.target, read=True)
    item = resolve(intent, await self.snapshot(intent, preferences))
    await self.store.update(intent.target, item.identifier, _update_fields(intent))
    logger.info("Modified %s %s", intent.target.label, item.identifier)
    return f"Modified {intent.target.label}: {intent.title}"

  async def delete(self, intent: ScheduleIntent, preferences: Preferences) -> str:
    await self._require_access(intent.target, read=True)
    item = resolve(intent, await self.snapshot(intent, preferences))
    await self.store.remove(intent.target, item.identifier)
    logger.info("Deleted %s %s", intent.target.label, item.identifier)
    return f"Deleted {intent.target.label}: {item.title or 'Untitled'}"

  async def apply(self, intent: ScheduleIntent,
                  preferences: Optional[Preferences] = None,
                  destination_override: Optional[str] = None) -> str:
    prefs = preferences or Preferences()
    if intent.type is IntentType.DELETE:
      return await self.delete(intent, prefs)
    if intent.type is IntentType.MODIFY:
      return await self.modify(intent, prefs)
    return await self.add(intent, prefs, destination_override)


class IntentPipeline:
  """Caller-facing entry points: extract an intent, then apply it."""

  def __init__(self,
               gateway: ModelGateway,
               store: CalendarStore) -> None:
    self.gateway = gateway
    self.store = store
    self.applier = IntentApplier(store)

  async def extract_intent(self,
                           text: str,
                           image: Optional[ImageInput] = None,
                           now: Optional[datetime] = None) -> Tuple[ScheduleIntent, str]:
    return await self.gateway.parse(text, image=image, now=now)

  async def apply_intent(self,
                         intent: ScheduleIntent,
                         preferences: Optional[Preferences] = None,
                         destination_override: Optional[str] = None) -> str:
    return await self.applier.apply(intent, preferences, destination_override)

  async def run(self,
                text: str,
                image: Optional[ImageInput] = None,
                preferences: Optional[Preferences] = None,
                now: Optional[datetime] = None) -> RunResult:
    """Extract, then apply modify/delete right away; add waits for confirmation."""
    intent, raw_output = await self.extract_intent(text, image=image, now=now)
    if intent.type is IntentType.ADD:
      return RunResult(intent=intent, raw_output=raw_output, applied=False)
    message = await self.apply_intent(intent, preferences)
    return RunResult(intent=intent, raw_output=raw_output, applied=True, message=message)
