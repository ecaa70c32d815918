from __future__ import annotations

import json
from datetime import datetime, timedelta

import httpx
import pytest

from intentcal.agent.orchestrator import IntentApplier, IntentPipeline
from intentcal.errors import (
    AuthorizationError,
    NoDestinationError,
    NotFoundError,
    TransportError,
)
from intentcal.models import IntentType, Preferences, ScheduleIntent, ScheduleTarget
from intentcal.state import AuthorizationStatus, InMemoryCalendarStore
from tests.conftest import SHANGHAI, chat_response, event_item, make_gateway, reminder_item

NOON = datetime(2026, 2, 5, 12, 0, tzinfo=SHANGHAI)


def _intent(title, intent_type=IntentType.ADD, target=ScheduleTarget.EVENT, **extra):
  start = extra.pop("start", NOON)
  return ScheduleIntent(type=intent_type, target=target, title=title,
                        start_date=start, end_date=extra.pop("end", start + timedelta(hours=1)),
                        **extra)


async def test_scenario_b_delete_removes_matching_event(store):
  store.items[ScheduleTarget.EVENT].append(
      event_item("e1", "Lunch with Sam", NOON + timedelta(minutes=30), NOON + timedelta(hours=1)))
  message = await IntentApplier(store).apply(_intent("Lunch", IntentType.DELETE))
  assert message == "Deleted event: Lunch with Sam"
  assert store.items[ScheduleTarget.EVENT] == []


async def test_scenario_c_delete_without_match(store):
  store.items[ScheduleTarget.EVENT].append(event_item("e1", "Lunch with Sam", NOON))
  with pytest.raises(NotFoundError):
    await IntentApplier(store).apply(_intent("Dentist", IntentType.DELETE))
  assert len(store.items[ScheduleTarget.EVENT]) == 1


async def test_add_event_uses_preferred_calendar(store):
  prefs = Preferences(default_calendar_id="work")
  intent = _intent("Review", location="Room 4", notes="bring laptop")
  message = await IntentApplier(store).apply(intent, prefs)
  assert message == "Added event: Review"
  created = store.items[ScheduleTarget.EVENT][0]
  assert created.calendar_id == "work"
  assert created.start_time == NOON
  assert created.due_or_end_time == NOON + timedelta(hours=1)
  assert created.location == "Room 4"
  assert created.notes == "bring laptop"


async def test_add_override_beats_preferences(store):
  prefs = Preferences(default_calendar_id="work")
  await IntentApplier(store).apply(_intent("Review"), prefs, destination_override="home")
  assert store.items[ScheduleTarget.EVENT][0].calendar_id == "home"


async def test_add_unknown_override_falls_through(store):
  prefs = Preferences(default_calendar_id="work")
  await IntentApplier(store).apply(_intent("Review"), prefs, destination_override="gone")
  assert store.items[ScheduleTarget.EVENT][0].calendar_id == "work"


async def test_add_stale_preference_uses_system_default(store):
  prefs = Preferences(default_calendar_id="deleted-calendar")
  await IntentApplier(store).apply(_intent("Review"), prefs)
  assert store.items[ScheduleTarget.EVENT][0].calendar_id == "home"


async def test_add_falls_back_to_first_available(destinations):
  no_default = [d.model_copy(update={"is_default": False}) for d in destinations]
  store = InMemoryCalendarStore(destinations=no_default)
  await IntentApplier(store).apply(_intent("Review"))
  assert store.items[ScheduleTarget.EVENT][0].calendar_id == "work"


async def test_add_without_any_destination():
  store = InMemoryCalendarStore()
  with pytest.raises(NoDestinationError):
    await IntentApplier(store).apply(_intent("Review"))
  assert store.items[ScheduleTarget.EVENT] == []


async def test_add_reminder_sets_due_date(store):
  intent = _intent("Buy milk", target=ScheduleTarget.REMINDER, is_all_day=True,
                   start=datetime(2026, 2, 5, tzinfo=SHANGHAI))
  message = await IntentApplier(store).apply(intent, Preferences(default_reminder_list_id="groceries"))
  assert message == "Added reminder: Buy milk"
  created = store.items[ScheduleTarget.REMINDER][0]
  assert created.calendar_id == "groceries"
  assert created.start_time is None
  assert created.due_or_end_time == datetime(2026, 2, 5, tzinfo=SHANGHAI)
  assert created.is_all_day is True


async def test_modify_event_keeps_unset_fields(store):
  store.items[ScheduleTarget.EVENT].append(
      event_item("e1", "Standup", NOON, NOON + timedelta(minutes=15),
                 location="Room 1", notes="daily"))
  new_start = NOON + timedelta(hours=3)
  intent = _intent("standup", IntentType.MODIFY, start=new_start,
                   end=new_start + timedelta(minutes=30))
  message = await IntentApplier(store).apply(intent)
  assert message == "Modified event: standup"
  updated = store.items[ScheduleTarget.EVENT][0]
  assert updated.identifier == "e1"
  assert updated.title == "standup"
  assert updated.start_time == new_start
  assert updated.due_or_end_time == new_start + timedelta(minutes=30)
  assert updated.location == "Room 1"
  assert updated.notes == "daily"


async def test_modify_reminder_only_in_selected_lists(store):
  store.items[ScheduleTarget.REMINDER].extend([
      reminder_item("r1", "Call mom", calendar_id="todo"),
      reminder_item("r2", "Call mom", calendar_id="groceries"),
  ])
  prefs = Preferences(selected_reminder_list_ids=["groceries"])
  intent = _intent("call mom", IntentType.MODIFY, target=ScheduleTarget.REMINDER,
                   notes="after dinner")
  await IntentApplier(store).apply(intent, prefs)
  by_id = {item.identifier: item for item in store.items[ScheduleTarget.REMINDER]}
  assert by_id["r1"].notes is None
  assert by_id["r2"].notes == "after dinner"
  assert by_id["r2"].due_or_end_time == NOON


async def test_delete_reminder_without_due_date(store):
  store.items[ScheduleTarget.REMINDER].append(reminder_item("r1", "Buy milk and eggs"))
  message = await IntentApplier(store).apply(
      _intent("buy milk", IntentType.DELETE, target=ScheduleTarget.REMINDER))
  assert message == "Deleted reminder: Buy milk and eggs"
  assert store.items[ScheduleTarget.REMINDER] == []


async def test_delete_message_uses_stored_title(store):
  applier = IntentApplier(store)
  store.items[ScheduleTarget.EVENT].append(event_item("e1", "Lunch", NOON))
  message = await applier.delete(_intent("Lunch", IntentType.DELETE), Preferences())
  assert message == "Deleted event: Lunch"


@pytest.mark.parametrize("status", [AuthorizationStatus.DENIED,
                                    AuthorizationStatus.NOT_DETERMINED])
async def test_add_requires_write_access(destinations, status):
  store = InMemoryCalendarStore(destinations=destinations,
                                authorization={ScheduleTarget.EVENT: status})
  with pytest.raises(AuthorizationError):
    await IntentApplier(store).apply(_intent("Review"))
  assert store.items[ScheduleTarget.EVENT] == []


async def test_write_only_can_add_but_not_delete(destinations):
  store = InMemoryCalendarStore(
      destinations=destinations,
      items=[event_item("e1", "Lunch", NOON)],
      authorization={ScheduleTarget.EVENT: AuthorizationStatus.WRITE_ONLY})
  applier = IntentApplier(store)
  assert await applier.apply(_intent("Review")) == "Added event: Review"
  with pytest.raises(AuthorizationError):
    await applier.apply(_intent("Lunch", IntentType.DELETE))
  assert len(store.items[ScheduleTarget.EVENT]) == 2


async def test_reminder_access_is_checked_separately(destinations):
  store = InMemoryCalendarStore(
      destinations=destinations,
      authorization={ScheduleTarget.REMINDER: AuthorizationStatus.DENIED})
  applier = IntentApplier(store)
  with pytest.raises(AuthorizationError):
    await applier.apply(_intent("Milk", target=ScheduleTarget.REMINDER))
  assert await applier.apply(_intent("Review")) == "Added event: Review"


def _model_reply(payload):
  return lambda request: chat_response(json.dumps(payload))


async def test_run_returns_add_unapplied(store, now):
  gateway, _ = make_gateway(_model_reply({
      "intent_type": "add",
      "target": "event",
      "title": "Dinner",
      "start_time": "2026-02-04T19:00:00+08:00",
      "end_time": "2026-02-04T21:00:00+08:00",
      "is_all_day": False,
  }))
  result = await IntentPipeline(gateway, store).run("dinner at 7", now=now)
  assert result.applied is False
  assert result.message is None
  assert result.intent.title == "Dinner"
  assert store.items[ScheduleTarget.EVENT] == []

  message = await IntentPipeline(gateway, store).apply_intent(result.intent)
  assert message == "Added event: Dinner"
  assert store.items[ScheduleTarget.EVENT][0].calendar_id == "home"


async def test_run_applies_delete(store, now):
  store.items[ScheduleTarget.EVENT].append(
      event_item("e1", "Lunch with Sam", datetime(2026, 2, 5, 12, 30, tzinfo=SHANGHAI)))
  gateway, _ = make_gateway(_model_reply({
      "intent_type": "delete",
      "target": "event",
      "title": "Lunch",
      "start_time": "2026-02-05T12:00:00+08:00",
      "end_time": "2026-02-05T13:00:00+08:00",
      "is_all_day": False,
  }))
  result = await IntentPipeline(gateway, store).run("cancel lunch tomorrow", now=now)
  assert result.applied is True
  assert result.message == "Deleted event: Lunch with Sam"
  assert store.items[ScheduleTarget.EVENT] == []


async def test_transport_failure_leaves_store_untouched(store, now):
  store.items[ScheduleTarget.EVENT].append(event_item("e1", "Lunch", NOON))
  gateway, _ = make_gateway(lambda request: httpx.Response(500, text="down"))
  with pytest.raises(TransportError):
    await IntentPipeline(gateway, store).run("delete lunch", now=now)
  assert [item.identifier for item in store.items[ScheduleTarget.EVENT]] == ["e1"]
