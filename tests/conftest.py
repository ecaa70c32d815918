from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
import pytest
from openai import AsyncOpenAI

from intentcal.agent.llm_provider import ModelGateway
from intentcal.models import (
    CalendarDestination,
    CalendarItem,
    LLMMode,
    LLMSettings,
    ScheduleTarget,
)
from intentcal.state import InMemoryCalendarStore

SHANGHAI = ZoneInfo("Asia/Shanghai")


def chat_response(content: Any, status_code: int = 200) -> httpx.Response:
  return httpx.Response(status_code, json={
      "id": "chatcmpl-test",
      "object": "chat.completion",
      "created": 0,
      "model": "qwen-long-latest",
      "choices": [{
          "index": 0,
          "finish_reason": "stop",
          "message": {"role": "assistant", "content": content},
      }],
  })


class RecordingBackend:
  """httpx transport handler that records requests and replays responses."""

  def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
    self.responder = responder
    self.requests: List[httpx.Request] = []

  def __call__(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    return self.responder(request)

  @property
  def last_body(self) -> Dict[str, Any]:
    return json.loads(self.requests[-1].content)


def make_gateway(responder: Callable[[httpx.Request], httpx.Response],
                 tz=SHANGHAI) -> tuple[ModelGateway, RecordingBackend]:
  backend = RecordingBackend(responder)
  client = AsyncOpenAI(
      api_key="test-key",
      base_url="https://llm.test/v1",
      max_retries=0,
      http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
  )
  settings = LLMSettings(mode=LLMMode.CUSTOM,
                         base_url="https://llm.test/v1",
                         api_key="test-key",
                         model="qwen-vl-max")
  return ModelGateway(settings=settings, client=client, tz=tz), backend


@pytest.fixture
def tz():
  return SHANGHAI


@pytest.fixture
def now() -> datetime:
  return datetime(2026, 2, 4, 15, 30, tzinfo=SHANGHAI)


def event_item(identifier: str, title: str, start: datetime, end: Optional[datetime] = None,
               calendar_id: str = "work", **extra: Any) -> CalendarItem:
  return CalendarItem(identifier=identifier,
                      kind=ScheduleTarget.EVENT,
                      title=title,
                      start_time=start,
                      due_or_end_time=end or start,
                      calendar_id=calendar_id,
                      **extra)


def reminder_item(identifier: str, title: str, due: Optional[datetime] = None,
                  calendar_id: str = "todo", **extra: Any) -> CalendarItem:
  return CalendarItem(identifier=identifier,
                      kind=ScheduleTarget.REMINDER,
                      title=title,
                      due_or_end_time=due,
                      calendar_id=calendar_id,
                      **extra)


@pytest.fixture
def destinations() -> List[CalendarDestination]:
  return [
      CalendarDestination(id="work", title="Work", kind=ScheduleTarget.EVENT),
      CalendarDestination(id="home", title="Home", kind=ScheduleTarget.EVENT, is_default=True),
      CalendarDestination(id="todo", title="To Do", kind=ScheduleTarget.REMINDER,
                          is_default=True),
      CalendarDestination(id="groceries", title="Groceries", kind=ScheduleTarget.REMINDER),
  ]


@pytest.fixture
def store(destinations) -> InMemoryCalendarStore:
  return InMemoryCalendarStore(destinations=destinations)
