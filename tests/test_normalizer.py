from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

from intentcal.agent.normalizer import (
    Decoded,
    Malformed,
    decode_model_output,
    fallback_title,
    normalize,
    strip_code_fence,
)
from intentcal.models import IntentType, ScheduleTarget
from tests.conftest import SHANGHAI

TOMORROW = datetime(2026, 2, 5, 0, 0, tzinfo=SHANGHAI)


def _normalize(raw, now, fallback="fallback title"):
  return normalize(raw, fallback, now=now, tz=SHANGHAI)


def test_full_model_output(now):
  raw = json.dumps({
      "ocr_content": "",
      "intent_type": "add",
      "target": "Event",
      "title": "Team sync",
      "start_time": "2026-02-06T10:00:00+08:00",
      "end_time": "2026-02-06T11:30:00+08:00",
      "is_all_day": False,
      "location": "Room A",
      "notes": "bring slides",
  })
  intent = _normalize(raw, now)
  assert intent.type is IntentType.ADD
  assert intent.target is ScheduleTarget.EVENT
  assert intent.title == "Team sync"
  assert intent.start_date == datetime(2026, 2, 6, 10, 0, tzinfo=SHANGHAI)
  assert intent.end_date == datetime(2026, 2, 6, 11, 30, tzinfo=SHANGHAI)
  assert intent.location == "Room A"
  assert intent.notes == "bring slides"
  assert intent.is_all_day is False


def test_strips_markdown_fence(now):
  raw = '```json\n{"title": "Dentist", "intent_type": "delete", "start_time": "2026-02-06T09:00:00+08:00"}\n```'
  intent = _normalize(raw, now)
  assert intent.title == "Dentist"
  assert intent.type is IntentType.DELETE


def test_scenario_a_missing_start_defaults_to_all_day_tomorrow(now):
  user_text = "明天去医院"
  raw = json.dumps({"intent_type": "add", "title": "去医院", "is_all_day": False})
  intent = normalize(raw, fallback_title(user_text), now=now, tz=SHANGHAI)
  assert intent.is_all_day is True
  assert intent.start_date == TOMORROW
  assert intent.target is ScheduleTarget.EVENT
  assert intent.type is IntentType.ADD


def test_scenario_e_json_that_is_not_an_intent_object(now):
  user_text = "Schedule a call with the landlord about the lease renewal"
  for raw in ('["just", "strings"]', '"a plain string"', "42", "null"):
    intent = normalize(raw, fallback_title(user_text), now=now, tz=SHANGHAI)
    assert intent.type is IntentType.ADD
    assert intent.target is ScheduleTarget.EVENT
    assert intent.title == user_text[:20]
    assert intent.start_date == TOMORROW
    assert intent.is_all_day is True


def test_unparseable_text_degrades_to_default(now):
  intent = _normalize("Sorry, I cannot help with that.", now, fallback="Buy milk")
  assert intent.title == "Buy milk"
  assert intent.type is IntentType.ADD
  assert intent.start_date == TOMORROW
  assert intent.is_all_day is True


@pytest.mark.parametrize("raw", [None, "", "```\n```", "{not json"])
def test_never_raises(raw, now):
  intent = _normalize(raw, now)
  assert intent.title == "fallback title"


def test_json_embedded_in_prose(now):
  raw = 'Here you go: {"title": "Yoga", "intent_type": "modify", "target": "Reminder"} hope it helps'
  intent = _normalize(raw, now)
  assert intent.title == "Yoga"
  assert intent.type is IntentType.MODIFY
  assert intent.target is ScheduleTarget.REMINDER


def test_unknown_enums_default(now):
  raw = json.dumps({"title": "x", "intent_type": "reschedule", "target": "Alarm",
                    "start_time": "2026-02-06T10:00:00+08:00"})
  intent = _normalize(raw, now)
  assert intent.type is IntentType.ADD
  assert intent.target is ScheduleTarget.EVENT


def test_blank_title_uses_fallback(now):
  intent = _normalize(json.dumps({"title": "   "}), now, fallback="Dinner at 7")
  assert intent.title == "Dinner at 7"


def test_timed_without_end_gets_one_hour(now):
  raw = json.dumps({"title": "Call", "start_time": "2026-02-06T10:00:00+08:00"})
  intent = _normalize(raw, now)
  assert intent.is_all_day is False
  assert intent.end_date - intent.start_date == timedelta(hours=1)


def test_all_day_without_end_stays_on_same_day(now):
  raw = json.dumps({"title": "Holiday", "is_all_day": True,
                    "start_time": "2026-02-06T00:00:00+08:00"})
  intent = _normalize(raw, now)
  assert intent.is_all_day is True
  assert intent.end_date.date() == intent.start_date.date()


def test_negative_duration_is_repaired(now):
  raw = json.dumps({"title": "Call",
                    "start_time": "2026-02-06T10:00:00+08:00",
                    "end_time": "2026-02-06T09:00:00+08:00"})
  intent = _normalize(raw, now)
  assert intent.end_date == intent.start_date + timedelta(hours=1)


def test_unparseable_end_is_derived(now):
  raw = json.dumps({"title": "Call",
                    "start_time": "2026-02-06T10:00:00+08:00",
                    "end_time": "later"})
  intent = _normalize(raw, now)
  assert intent.end_date == datetime(2026, 2, 6, 11, 0, tzinfo=SHANGHAI)


def test_string_booleans_and_blank_optionals(now):
  raw = json.dumps({"title": "Trip", "is_all_day": "true", "location": "", "notes": None,
                    "start_time": "2026-02-06T00:00:00+08:00"})
  intent = _normalize(raw, now)
  assert intent.is_all_day is True
  assert intent.location is None
  assert intent.notes is None


def test_idempotent_apart_from_id(now):
  raw = '{"title": "Standup", "intent_type": "add", "start_time": "bad"}'
  first = _normalize(raw, now)
  second = _normalize(raw, now)
  assert first.fields_without_id() == second.fields_without_id()
  assert first.id != second.id


def test_fallback_title():
  assert fallback_title("") == "New Event"
  assert fallback_title("   ") == "New Event"
  assert fallback_title("Pick up the dry cleaning on Friday") == "Pick up the dry clea"
  assert fallback_title("short") == "short"


def test_decode_is_a_tagged_union():
  assert isinstance(decode_model_output('{"a": 1}'), Decoded)
  assert decode_model_output('[{"title": "first"}]') == Decoded({"title": "first"})
  assert isinstance(decode_model_output("[1, 2]"), Malformed)
  assert isinstance(decode_model_output(""), Malformed)


def test_strip_code_fence():
  assert strip_code_fence("```json\n{}\n```") == "{}"
  assert strip_code_fence("  {}  ") == "{}"
