from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from .config import (
    DELETE_SEARCH_WINDOW,
    MODIFY_SEARCH_WINDOW,
    DEFAULT_LLM_BASE_URL,
    DEFAULT_LLM_MODEL,
    LLM_MODE,
    LLM_BASE_URL,
    LLM_API_KEY,
    LLM_MODEL,
    LLM_TIMEOUT_SECONDS,
    LLM_DEBUG,
    DEFAULT_TIMEZONE,
)


class IntentType(str, Enum):
    ADD = "add"
    DELETE = "delete"
    MODIFY = "modify"

    @classmethod
    def from_label(cls, value: Any) -> "IntentType":
        if isinstance(value, str):
            cleaned = value.strip().lower()
            for member in cls:
                if member.value == cleaned:
                    return member
        return cls.ADD


class ScheduleTarget(str, Enum):
    EVENT = "event"
    REMINDER = "reminder"

    @classmethod
    def from_label(cls, value: Any) -> "ScheduleTarget":
        if isinstance(value, str):
            cleaned = value.strip().lower()
            for member in cls:
                if member.value == cleaned:
                    return member
        return cls.EVENT

    @property
    def label(self) -> str:
        return self.value

    def search_window(self, intent_type: IntentType,
                      anchor: datetime) -> Optional[Tuple[datetime, datetime]]:
        """Time range a modify/delete search covers, or None for the whole list.

        Reminders often have no due time, so they are matched against every
        reminder the caller fetched rather than a window.
        """
        if self is ScheduleTarget.REMINDER:
            return None
        span = MODIFY_SEARCH_WINDOW if intent_type is IntentType.MODIFY else DELETE_SEARCH_WINDOW
        return (anchor - span, anchor + span)


class SummaryDuration(str, Enum):
    ONE_DAY = "1 Day"
    THREE_DAYS = "3 Days"
    ONE_WEEK = "1 Week"

    @property
    def days(self) -> int:
        return {
            SummaryDuration.ONE_DAY: 1,
            SummaryDuration.THREE_DAYS: 3,
            SummaryDuration.ONE_WEEK: 7,
        }[self]


def _new_intent_id() -> str:
    return uuid.uuid4().hex


class ScheduleIntent(BaseModel):
    id: str = Field(default_factory=_new_intent_id)
    type: IntentType = IntentType.ADD
    target: ScheduleTarget = ScheduleTarget.EVENT
    title: str = Field(min_length=1)
    start_date: AwareDatetime
    end_date: AwareDatetime
    location: Optional[str] = None
    notes: Optional[str] = None
    is_all_day: bool = False

    @model_validator(mode="after")
    def repair_end(self) -> "ScheduleIntent":
        if self.end_date < self.start_date:
            from .agent.date_resolver import default_end
            self.end_date = default_end(self.start_date, self.is_all_day)
        return self

    def fields_without_id(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})


class CalendarItem(BaseModel):
    identifier: str
    kind: ScheduleTarget = ScheduleTarget.EVENT
    title: str = ""
    start_time: Optional[datetime] = None
    due_or_end_time: Optional[datetime] = None
    calendar_id: Optional[str] = None
    is_all_day: bool = False
    location: Optional[str] = None
    notes: Optional[str] = None
    completed: bool = False


class MatchCandidate(BaseModel):
    item: CalendarItem
    score: bool


class CalendarDestination(BaseModel):
    id: str
    title: str = ""
    kind: ScheduleTarget = ScheduleTarget.EVENT
    is_default: bool = False


class Preferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    default_calendar_id: Optional[str] = None
    default_reminder_list_id: Optional[str] = None
    selected_calendar_ids: List[str] = Field(default_factory=list)
    selected_reminder_list_ids: List[str] = Field(default_factory=list)
    timezone: Optional[str] = DEFAULT_TIMEZONE or None
    summary_duration: SummaryDuration = SummaryDuration.ONE_DAY
    summary_calendar_ids: List[str] = Field(default_factory=list)
    summary_reminder_list_ids: List[str] = Field(default_factory=list)
    journal_summary_duration: SummaryDuration = SummaryDuration.ONE_DAY
    journal_summary_calendar_ids: List[str] = Field(default_factory=list)
    journal_summary_reminder_list_ids: List[str] = Field(default_factory=list)

    def default_destination_for(self, kind: ScheduleTarget) -> Optional[str]:
        if kind is ScheduleTarget.REMINDER:
            return self.default_reminder_list_id
        return self.default_calendar_id

    def selected_ids_for(self, kind: ScheduleTarget) -> List[str]:
        if kind is ScheduleTarget.REMINDER:
            return list(self.selected_reminder_list_ids)
        return list(self.selected_calendar_ids)


class LLMMode(str, Enum):
    DEFAULT = "default"
    CUSTOM = "custom"


class LLMSettings(BaseModel):
    mode: LLMMode = LLMMode.DEFAULT
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    timeout_seconds: float = 60.0
    show_debug_output: bool = False

    @property
    def current_base_url(self) -> str:
        if self.mode is LLMMode.CUSTOM and self.base_url.strip():
            return self.base_url.strip()
        return DEFAULT_LLM_BASE_URL

    @property
    def current_model(self) -> str:
        if self.mode is LLMMode.CUSTOM and self.model.strip():
            return self.model.strip()
        return DEFAULT_LLM_MODEL

    @property
    def current_api_key(self) -> str:
        return self.api_key.strip()


def get_llm_settings() -> LLMSettings:
    mode = LLMMode.CUSTOM if LLM_MODE == "custom" else LLMMode.DEFAULT
    return LLMSettings(
        mode=mode,
        base_url=LLM_BASE_URL,
        api_key=LLM_API_KEY,
        model=LLM_MODEL,
        timeout_seconds=LLM_TIMEOUT_SECONDS,
        show_debug_output=LLM_DEBUG,
    )


class RunResult(BaseModel):
    intent: ScheduleIntent
    raw_output: str = ""
    applied: bool = False
    message: Optional[str] = None


# -------------------------
# HTTP payloads
# -------------------------
class ExtractRequest(BaseModel):
    text: str = ""
    image: Optional[str] = None  # data:image/...;base64,...


class ExtractResponse(BaseModel):
    intent: ScheduleIntent
    raw_output: str = ""


class ApplyRequest(BaseModel):
    intent: ScheduleIntent
    preferences: Optional[Preferences] = None
    destination_id: Optional[str] = None


class ApplyResponse(BaseModel):
    ok: bool = True
    message: str


class RunRequest(BaseModel):
    text: str = ""
    image: Optional[str] = None
    preferences: Optional[Preferences] = None


class SummaryRequest(BaseModel):
    kind: str = "schedule"  # "schedule" | "journal"
    preferences: Optional[Preferences] = None
    start: Optional[AwareDatetime] = None


class SummaryResponse(BaseModel):
    summary: str

