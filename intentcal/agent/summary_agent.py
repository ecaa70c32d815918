from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo
from typing import Iterable, List, Optional, Tuple

from ..models import CalendarItem, Preferences, ScheduleTarget, SummaryDuration
from ..state import CalendarStore
from . import date_resolver
from .llm_provider import ModelGateway


def _format_date(value: datetime) -> str:
  return value.strftime("%Y-%m-%d")


def _format_time(value: datetime) -> str:
  return value.strftime("%H:%M")


def _event_line(event: CalendarItem, with_duration: bool) -> str:
  title = event.title or "No Title"
  if event.start_time is None:
    return f"- [Event]: {title}"
  line = f"- [Event] [{_format_date(event.start_time)}] {_format_time(event.start_time)}: {title}"
  if not with_duration:
    return line
  if event.is_all_day:
    return f"{line} (All Day)"
  end = event.due_or_end_time or event.start_time
  length = (end - event.start_time).total_seconds() / 3600
  return f"{line} (Duration: {length:.1f} h)"


def build_schedule_text(events: Iterable[CalendarItem],
                        reminders: Iterable[CalendarItem],
                        with_duration: bool = False) -> str:
  lines = [_event_line(event, with_duration) for event in events]
  for reminder in reminders:
    due = reminder.due_or_end_time
    when = f"{_format_date(due)} {_format_time(due)}" if due is not None else "No Due Date"
    lines.append(f"- [Reminder] [{when}]: {reminder.title or 'Reminder'}")
  return "\n".join(lines)


async def fetch_schedule(store: CalendarStore,
                         duration: SummaryDuration,
                         start: datetime,
                         calendar_ids: List[str],
                         reminder_list_ids: List[str]) -> Tuple[List[CalendarItem], List[CalendarItem]]:
  """Events in ``[start, start + duration]`` and incomplete reminders due in it."""
  end = start + timedelta(days=duration.days)
  events = await store.list_items(ScheduleTarget.EVENT,
                                  time_range=(start, end),
                                  calendar_ids=calendar_ids or None)
  reminders: List[CalendarItem] = []
  for reminder in await store.list_items(ScheduleTarget.REMINDER,
                                         calendar_ids=reminder_list_ids or None):
    due = reminder.due_or_end_time
    if reminder.completed or due is None:
      continue
    if start <= due <= end:
      reminders.append(reminder)
  return events, reminders


async def summarize_upcoming(store: CalendarStore,
                             gateway: ModelGateway,
                             preferences: Preferences,
                             start: Optional[datetime] = None) -> str:
  tz = date_resolver.local_timezone(preferences.timezone)
  duration = preferences.summary_duration
  range_start = start if start is not None else date_resolver.now_in_timezone(tz)
  events, reminders = await fetch_schedule(store, duration, range_start,
                                           preferences.summary_calendar_ids,
                                           preferences.summary_reminder_list_ids)
  if not events and not reminders:
    return f"No upcoming events or reminders found for the next {duration.value}."
  return await gateway.generate_schedule_summary(build_schedule_text(events, reminders))


def _start_of_day(value: datetime, tz: tzinfo) -> datetime:
  local = value.astimezone(tz)
  return datetime.combine(local.date(), time.min, tzinfo=tz)


async def summarize_day_for_journal(store: CalendarStore,
                                    gateway: ModelGateway,
                                    preferences: Preferences,
                                    day: Optional[datetime] = None) -> str:
  tz = date_resolver.local_timezone(preferences.timezone)
  duration = preferences.journal_summary_duration
  anchor = day if day is not None else date_resolver.now_in_timezone(tz)
  events, reminders = await fetch_schedule(store, duration, _start_of_day(anchor, tz),
                                           preferences.journal_summary_calendar_ids,
                                           preferences.journal_summary_reminder_list_ids)
  if not events and not reminders:
    return "No events or reminders found for the selected duration."
  return await gateway.summarize(build_schedule_text(events, reminders, with_duration=True))
