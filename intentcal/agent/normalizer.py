from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
import json
import re
from typing import Any, Dict, Optional, Union

from ..config import FALLBACK_TITLE, FALLBACK_TITLE_CHARS
from ..models import IntentType, ScheduleIntent, ScheduleTarget
from ..utils import _clean_optional_str, _log_debug
from . import date_resolver

_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class Decoded:
  fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Malformed:
  reason: str = ""


DecodeResult = Union[Decoded, Malformed]


def fallback_title(user_text: Optional[str]) -> str:
  cleaned = (user_text or "").strip()
  if not cleaned:
    return FALLBACK_TITLE
  return cleaned[:FALLBACK_TITLE_CHARS]


def strip_code_fence(text: Optional[str]) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = _FENCE_OPEN_RE.sub("", cleaned).strip()
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned).strip()
  return cleaned.replace("```", "").strip()


def decode_model_output(raw_text: Optional[str]) -> DecodeResult:
  cleaned = strip_code_fence(raw_text)
  if not cleaned:
    return Malformed("empty output")

  candidates = [cleaned]
  left = cleaned.find("{")
  right = cleaned.rfind("}")
  if left != -1 and right > left:
    candidates.append(cleaned[left:right + 1])

  last_reason = "not a JSON object"
  for candidate in candidates:
    try:
      value = json.loads(candidate)
    except ValueError as exc:
      last_reason = f"invalid JSON: {exc}"
      continue
    if isinstance(value, list) and value and isinstance(value[0], dict):
      value = value[0]
    if isinstance(value, dict):
      return Decoded(value)
    last_reason = f"expected an object, got {type(value).__name__}"
  return Malformed(last_reason)


def _coerce_bool(value: Any) -> Optional[bool]:
  if isinstance(value, bool):
    return value
  if isinstance(value, str):
    cleaned = value.strip().lower()
    if cleaned == "true":
      return True
    if cleaned == "false":
      return False
  return None


def _default_intent(title: str, now: Optional[datetime],
                    tz: Optional[tzinfo]) -> ScheduleIntent:
  start = date_resolver.default_start(now, tz)
  return ScheduleIntent(
      type=IntentType.ADD,
      target=ScheduleTarget.EVENT,
      title=title,
      start_date=start,
      end_date=date_resolver.default_end(start, True),
      is_all_day=True,
  )


def normalize(raw_model_text: Optional[str],
              fallback: str,
              now: Optional[datetime] = None,
              tz: Optional[tzinfo] = None) -> ScheduleIntent:
  """Build a ScheduleIntent from model output, defaulting instead of failing."""
  title_default = fallback if isinstance(fallback, str) and fallback.strip() else FALLBACK_TITLE
  decoded = decode_model_output(raw_model_text)
  if isinstance(decoded, Malformed):
    _log_debug(f"[NORMALIZER] malformed model output ({decoded.reason}): {raw_model_text!r}")
    return _default_intent(title_default, now, tz)

  fields = decoded.fields
  title = _clean_optional_str(fields.get("title")) or title_default
  intent_type = IntentType.from_label(fields.get("intent_type"))
  target = ScheduleTarget.from_label(fields.get("target"))
  is_all_day = _coerce_bool(fields.get("is_all_day"))
  if is_all_day is None:
    is_all_day = False

  start = date_resolver.parse(fields.get("start_time"))
  if start is None:
    start = date_resolver.default_start(now, tz)
    is_all_day = True

  end = date_resolver.parse(fields.get("end_time"))
  if end is None or end < start:
    end = date_resolver.default_end(start, is_all_day)

  return ScheduleIntent(
      type=intent_type,
      target=target,
      title=title,
      start_date=start,
      end_date=end,
      location=_clean_optional_str(fields.get("location")),
      notes=_clean_optional_str(fields.get("notes")),
      is_all_day=is_all_day,
  )
