from __future__ import annotations

import asyncio
import json
import pathlib
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httplib2
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.exceptions import TransportError as GoogleTransportError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .agent import date_resolver
from .config import (
    GOOGLE_TOKEN_FILE,
    GOOGLE_CALENDAR_ID,
    GOOGLE_TASKLIST_ID,
    GCAL_SCOPES,
)
from .errors import AuthorizationError, TransportError
from .models import CalendarDestination, CalendarItem, ScheduleTarget
from .state import AuthorizationStatus, CalendarStore, TimeRange
from .utils import _log_debug

TASKS_SCOPE = "https://www.googleapis.com/auth/tasks"
# Range used when an event listing has no explicit window.
UNBOUNDED_LOOKBACK = timedelta(days=365)
_WRITABLE_ROLES = ("owner", "writer")
_READABLE_ROLES = ("owner", "writer", "reader")


# -------------------------
# Token / service helpers
# -------------------------
def load_gcal_token(path: pathlib.Path = GOOGLE_TOKEN_FILE) -> Optional[Dict[str, Any]]:
  if not path.exists():
    return None
  try:
    with path.open("r", encoding="utf-8") as f:
      data = json.load(f)
  except (OSError, ValueError) as exc:
    _log_debug(f"[GCAL] token load failed: {exc}")
    return None
  return data if isinstance(data, dict) else None


def save_gcal_token(data: Dict[str, Any], path: pathlib.Path = GOOGLE_TOKEN_FILE) -> None:
  path.parent.mkdir(parents=True, exist_ok=True)
  path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def load_credentials(path: pathlib.Path = GOOGLE_TOKEN_FILE) -> Optional[Credentials]:
  token_data = load_gcal_token(path)
  if not token_data:
    return None
  creds = Credentials.from_authorized_user_info(token_data, GCAL_SCOPES)
  if creds.expired and creds.refresh_token:
    creds.refresh(GoogleRequest())
    save_gcal_token(json.loads(creds.to_json()), path)
  return creds


def _default_service_factory(api: str, version: str, creds: Credentials) -> Any:
  return build(api, version, credentials=creds, cache_discovery=False)


def _split_gcal_item_key(identifier: str) -> Tuple[str, Optional[str]]:
  if not isinstance(identifier, str) or "::" not in identifier:
    return (identifier, None)
  container_id, raw_id = identifier.split("::", 1)
  if raw_id:
    return (raw_id, container_id or None)
  return (identifier, None)


def _join_gcal_item_key(container_id: Optional[str], item_id: str) -> str:
  return f"{container_id}::{item_id}" if container_id else item_id


def _translate_http_error(exc: HttpError, action: str) -> Exception:
  status = getattr(exc.resp, "status", None)
  try:
    status = int(status) if status is not None else None
  except (TypeError, ValueError):
    status = None
  if status in (401, 403):
    return AuthorizationError(f"Google denied access while trying to {action}.")
  return TransportError(f"Google request failed while trying to {action}: {exc}",
                        status_code=status)


# -------------------------
# Time conversion
# -------------------------
def _convert_gcal_time(obj: Dict[str, Any], tz: tzinfo) -> Tuple[Optional[datetime], bool]:
  if not isinstance(obj, dict):
    return (None, False)
  dt_value = obj.get("dateTime")
  if isinstance(dt_value, str):
    try:
      return (datetime.fromisoformat(dt_value.replace("Z", "+00:00")), False)
    except ValueError:
      return (None, False)
  date_value = obj.get("date")
  if isinstance(date_value, str):
    try:
      day = datetime.strptime(date_value, "%Y-%m-%d").date()
    except ValueError:
      return (None, True)
    return (datetime.combine(day, time.min, tzinfo=tz), True)
  return (None, False)


def _normalize_gcal_event(raw: Dict[str, Any], calendar_id: str,
                          tz: tzinfo) -> Optional[CalendarItem]:
  event_id = raw.get("id")
  if not isinstance(event_id, str) or raw.get("status") == "cancelled":
    return None
  start, all_day = _convert_gcal_time(raw.get("start") or {}, tz)
  if start is None:
    return None
  end, _ = _convert_gcal_time(raw.get("end") or {}, tz)
  if all_day and end is not None:
    # Google all-day ends are exclusive; keep the inclusive last day.
    end = max(start, end - timedelta(days=1))
  return CalendarItem(
      identifier=_join_gcal_item_key(calendar_id, event_id),
      kind=ScheduleTarget.EVENT,
      title=raw.get("summary") or "",
      start_time=start,
      due_or_end_time=end or start,
      calendar_id=calendar_id,
      is_all_day=all_day,
      location=raw.get("location"),
      notes=raw.get("description"),
  )


def _normalize_google_task(raw: Dict[str, Any], tasklist_id: str,
                           tz: tzinfo) -> Optional[CalendarItem]:
  task_id = raw.get("id")
  if not isinstance(task_id, str) or raw.get("deleted"):
    return None
  due: Optional[datetime] = None
  due_raw = raw.get("due")
  if isinstance(due_raw, str) and len(due_raw) >= 10:
    try:
      # The Tasks API keeps only the date part of "due".
      day = datetime.strptime(due_raw[:10], "%Y-%m-%d").date()
      due = datetime.combine(day, time.min, tzinfo=tz)
    except ValueError:
      due = None
  return CalendarItem(
      identifier=_join_gcal_item_key(tasklist_id, task_id),
      kind=ScheduleTarget.REMINDER,
      title=raw.get("title") or "",
      due_or_end_time=due,
      calendar_id=tasklist_id,
      is_all_day=True,
      notes=raw.get("notes"),
      completed=raw.get("status") == "completed",
  )


def _event_time_body(start: datetime, end: Optional[datetime],
                     all_day: bool) -> Dict[str, Dict[str, Any]]:
  end = end if end is not None and end >= start else start
  if all_day:
    end_exclusive: date = end.date() + timedelta(days=1)
    return {
        "start": {"date": start.date().isoformat()},
        "end": {"date": end_exclusive.isoformat()},
    }
  return {
      "start": {"dateTime": start.isoformat()},
      "end": {"dateTime": end.isoformat()},
  }


def _build_gcal_event_body(fields: Dict[str, Any], patch: bool = False) -> Dict[str, Any]:
  body: Dict[str, Any] = {}
  if fields.get("title") is not None:
    body["summary"] = fields["title"]
  if fields.get("location") is not None:
    body["location"] = fields["location"]
  if fields.get("notes") is not None:
    body["description"] = fields["notes"]
  start = fields.get("start_time")
  if isinstance(start, datetime):
    body.update(_event_time_body(start, fields.get("due_or_end_time"),
                                 bool(fields.get("is_all_day"))))
    if patch:
      # Switching between all-day and timed needs the other key cleared.
      stale = "dateTime" if fields.get("is_all_day") else "date"
      body["start"][stale] = None
      body["end"][stale] = None
  return body


def _build_google_task_body(fields: Dict[str, Any]) -> Dict[str, Any]:
  body: Dict[str, Any] = {}
  if fields.get("title") is not None:
    body["title"] = fields["title"]
  if fields.get("notes") is not None:
    body["notes"] = fields["notes"]
  due = fields.get("due_or_end_time")
  if isinstance(due, datetime):
    body["due"] = f"{due.date().isoformat()}T00:00:00.000Z"
  if fields.get("completed") is not None:
    body["status"] = "completed" if fields["completed"] else "needsAction"
  return body


class GoogleCalendarStore(CalendarStore):
  """Google Calendar (events) and Google Tasks (reminders) behind CalendarStore.

  The discovery client is synchronous, so every call runs in a worker thread.
  Identifiers are ``"<calendar or tasklist id>::<item id>"``.
  """

  def __init__(self,
               credentials_loader: Callable[[], Optional[Credentials]] = load_credentials,
               service_factory: Callable[[str, str, Any], Any] = _default_service_factory,
               tz: Optional[tzinfo] = None) -> None:
    self._credentials_loader = credentials_loader
    self._service_factory = service_factory
    self.tz = tz or date_resolver.local_timezone()

  def _credentials(self) -> Credentials:
    try:
      creds = self._credentials_loader()
    except GoogleTransportError as exc:
      raise TransportError(f"Could not reach Google to refresh the token: {exc}") from exc
    except RefreshError as exc:
      raise AuthorizationError(f"Google token refresh failed: {exc}") from exc
    except GoogleAuthError as exc:
      raise AuthorizationError(f"Google credentials are invalid: {exc}") from exc
    if creds is None:
      raise AuthorizationError("Google OAuth token not found. Sign in to Google first.")
    return creds

  def _calendar_service(self) -> Any:
    return self._service_factory("calendar", "v3", self._credentials())

  def _tasks_service(self) -> Any:
    return self._service_factory("tasks", "v1", self._credentials())

  async def _run(self, action: str, func: Callable[[], Any]) -> Any:
    try:
      return await asyncio.to_thread(func)
    except HttpError as exc:
      raise _translate_http_error(exc, action) from exc
    except GoogleTransportError as exc:
      raise TransportError(f"Could not reach Google while trying to {action}: {exc}") from exc
    except RefreshError as exc:
      raise AuthorizationError(f"Google token refresh failed: {exc}") from exc
    except (httplib2.HttpLib2Error, OSError) as exc:
      raise TransportError(f"Could not reach Google while trying to {action}: {exc}") from exc

  # -------------------------
  # Authorization / destinations
  # -------------------------
  async def authorization_status(self, kind: ScheduleTarget) -> AuthorizationStatus:
    try:
      creds = await asyncio.to_thread(self._credentials)
    except AuthorizationError as exc:
      _log_debug(f"[GCAL] authorization check failed: {exc}")
      return AuthorizationStatus.NOT_DETERMINED
    if not creds.valid and not creds.refresh_token:
      return AuthorizationStatus.DENIED
    granted = getattr(creds, "granted_scopes", None) or creds.scopes or []
    if kind is ScheduleTarget.REMINDER and granted and TASKS_SCOPE not in granted:
      return AuthorizationStatus.DENIED
    return AuthorizationStatus.AUTHORIZED

  def _list_calendars_sync(self, roles: Tuple[str, ...]) -> List[CalendarDestination]:
    service = self._calendar_service()
    calendars: List[CalendarDestination] = []
    page_token: Optional[str] = None
    while True:
      response = service.calendarList().list(pageToken=page_token).execute()
      for raw in response.get("items", []):
        if not isinstance(raw, dict) or raw.get("deleted"):
          continue
        calendar_id = raw.get("id")
        if not isinstance(calendar_id, str) or not calendar_id.strip():
          continue
        if raw.get("accessRole") not in roles:
          continue
        calendars.append(CalendarDestination(
            id=calendar_id,
            title=raw.get("summary") or calendar_id,
            kind=ScheduleTarget.EVENT,
            is_default=bool(raw.get("primary")) or calendar_id == GOOGLE_CALENDAR_ID,
        ))
      page_token = response.get("nextPageToken")
      if not page_token:
        break
    return calendars

  def _list_tasklists_sync(self) -> List[CalendarDestination]:
    service = self._tasks_service()
    tasklists: List[CalendarDestination] = []
    page_token: Optional[str] = None
    while True:
      response = service.tasklists().list(pageToken=page_token).execute()
      for raw in response.get("items", []):
        if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
          continue
        tasklists.append(CalendarDestination(
            id=raw["id"],
            title=raw.get("title") or raw["id"],
            kind=ScheduleTarget.REMINDER,
            is_default=raw["id"] == GOOGLE_TASKLIST_ID,
        ))
      page_token = response.get("nextPageToken")
      if not page_token:
        break
    # The Tasks API lists the user's default list first.
    if tasklists and not any(t.is_default for t in tasklists):
      tasklists[0] = tasklists[0].model_copy(update={"is_default": True})
    return tasklists

  async def list_destinations(self, kind: ScheduleTarget) -> List[CalendarDestination]:
    if kind is ScheduleTarget.REMINDER:
      return await self._run("list task lists", self._list_tasklists_sync)
    return await self._run("list calendars",
                           lambda: self._list_calendars_sync(_WRITABLE_ROLES))

  async def default_destination(self, kind: ScheduleTarget) -> Optional[CalendarDestination]:
    for destination in await self.list_destinations(kind):
      if destination.is_default:
        return destination
    return None

  # -------------------------
  # Items
  # -------------------------
  def _list_events_sync(self, time_range: Optional[TimeRange],
                        calendar_ids: Optional[List[str]]) -> List[CalendarItem]:
    if time_range is None:
      now = date_resolver.now_in_timezone(self.tz)
      time_range = (now - UNBOUNDED_LOOKBACK, now + UNBOUNDED_LOOKBACK)
    if calendar_ids is None:
      calendar_ids = [c.id for c in self._list_calendars_sync(_READABLE_ROLES)]
    service = self._calendar_service()
    items: List[CalendarItem] = []
    for calendar_id in calendar_ids:
      page_token: Optional[str] = None
      while True:
        response = service.events().list(
            calendarId=calendar_id,
            singleEvents=True,
            orderBy="startTime",
            pageToken=page_token,
            timeMin=time_range[0].isoformat(),
            timeMax=time_range[1].isoformat(),
        ).execute()
        for raw in response.get("items", []):
          if not isinstance(raw, dict):
            continue
          item = _normalize_gcal_event(raw, calendar_id, self.tz)
          if item is not None:
            items.append(item)
        page_token = response.get("nextPageToken")
        if not page_token:
          break
    return items

  def _list_tasks_sync(self, tasklist_ids: Optional[List[str]]) -> List[CalendarItem]:
    if tasklist_ids is None:
      tasklist_ids = [t.id for t in self._list_tasklists_sync()]
    service = self._tasks_service()
    items: List[CalendarItem] = []
    for tasklist_id in tasklist_ids:
      page_token: Optional[str] = None
      while True:
        response = service.tasks().list(
            tasklist=tasklist_id,
            showCompleted=True,
            showHidden=False,
            pageToken=page_token,
        ).execute()
        for raw in response.get("items", []):
          if not isinstance(raw, dict):
            continue
          item = _normalize_google_task(raw, tasklist_id, self.tz)
          if item is not None:
            items.append(item)
        page_token = response.get("nextPageToken")
        if not page_token:
          break
    return items

  async def list_items(self,
                       kind: ScheduleTarget,
                       time_range: Optional[TimeRange] = None,
                       calendar_ids: Optional[Iterable[str]] = None) -> List[CalendarItem]:
    ids = list(calendar_ids) if calendar_ids else None
    if kind is ScheduleTarget.REMINDER:
      items = await self._run("list reminders", lambda: self._list_tasks_sync(ids))
      if time_range is None:
        return items
      start, end = time_range
      return [i for i in items
              if i.due_or_end_time is not None and start <= i.due_or_end_time <= end]
    return await self._run("list events", lambda: self._list_events_sync(time_range, ids))

  async def create(self, kind: ScheduleTarget, fields: Dict[str, Any],
                   destination: CalendarDestination) -> str:
    if kind is ScheduleTarget.REMINDER:
      body = _build_google_task_body(fields)
      created = await self._run("create a reminder", lambda: self._tasks_service().tasks().insert(
          tasklist=destination.id, body=body).execute())
    else:
      body = _build_gcal_event_body(fields)
      created = await self._run("create an event", lambda: self._calendar_service().events().insert(
          calendarId=destination.id, body=body).execute())
    item_id = created.get("id") if isinstance(created, dict) else None
    if not isinstance(item_id, str):
      raise TransportError(f"Google did not return an id for the new {kind.label}.")
    return _join_gcal_item_key(destination.id, item_id)

  async def update(self, kind: ScheduleTarget, identifier: str,
                   fields: Dict[str, Any]) -> None:
    item_id, container_id = _split_gcal_item_key(identifier)
    if kind is ScheduleTarget.REMINDER:
      body = _build_google_task_body(fields)
      await self._run("update a reminder", lambda: self._tasks_service().tasks().patch(
          tasklist=container_id or GOOGLE_TASKLIST_ID, task=item_id, body=body).execute())
      return
    body = _build_gcal_event_body(fields, patch=True)
    await self._run("update an event", lambda: self._calendar_service().events().patch(
        calendarId=container_id or GOOGLE_CALENDAR_ID, eventId=item_id, body=body).execute())

  async def remove(self, kind: ScheduleTarget, identifier: str) -> None:
    item_id, container_id = _split_gcal_item_key(identifier)
    if kind is ScheduleTarget.REMINDER:
      await self._run("delete a reminder", lambda: self._tasks_service().tasks().delete(
          tasklist=container_id or GOOGLE_TASKLIST_ID, task=item_id).execute())
      return
    await self._run("delete an event", lambda: self._calendar_service().events().delete(
        calendarId=container_id or GOOGLE_CALENDAR_ID, eventId=item_id).execute())
