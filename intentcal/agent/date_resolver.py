from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo
import re
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import DEFAULT_EVENT_DURATION, DEFAULT_TIMEZONE

_ISO_FRACTIONAL_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d+(?:Z|[+-]\d{2}:\d{2})$")
_ISO_SECONDS_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:Z|[+-]\d{2}:\d{2})$")

# %z accepts "Z", "+0800" and "+08:00".
DATE_TEMPLATES = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M%z",
)


def _parse_strict_iso(raw: str, pattern: re.Pattern) -> Optional[datetime]:
  if not pattern.match(raw):
    return None
  candidate = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
  try:
    return datetime.fromisoformat(candidate)
  except ValueError:
    return None


def parse(text: Any) -> Optional[datetime]:
  """Parse an offset-carrying timestamp; first matching format wins.

  Returns None for anything that is not a string or matches no format. The
  offset written in ``text`` is kept as-is.
  """
  if not isinstance(text, str):
    return None
  raw = text.strip()
  if not raw:
    return None

  for pattern in (_ISO_FRACTIONAL_RE, _ISO_SECONDS_RE):
    parsed = _parse_strict_iso(raw, pattern)
    if parsed is not None:
      return parsed

  for template in DATE_TEMPLATES:
    try:
      parsed = datetime.strptime(raw, template)
    except ValueError:
      continue
    if parsed.tzinfo is not None:
      return parsed
  return None


def local_timezone(name: Optional[str] = None) -> tzinfo:
  for candidate in (name, DEFAULT_TIMEZONE):
    if not isinstance(candidate, str) or not candidate.strip():
      continue
    try:
      return ZoneInfo(candidate.strip())
    except (ZoneInfoNotFoundError, ValueError):
      continue
  return datetime.now().astimezone().tzinfo


def now_in_timezone(tz: tzinfo) -> datetime:
  return datetime.now(tz)


def now_iso_in_timezone(tz: tzinfo, now: Optional[datetime] = None) -> str:
  current = now.astimezone(tz) if now is not None else now_in_timezone(tz)
  return current.isoformat(timespec="seconds")


def timezone_abbreviation(tz: tzinfo, now: Optional[datetime] = None) -> str:
  current = now.astimezone(tz) if now is not None else now_in_timezone(tz)
  return current.tzname() or "Local Time"


def default_start(now: Optional[datetime] = None,
                  tz: Optional[tzinfo] = None) -> datetime:
  """Start of tomorrow (00:00) in the resolving device's zone."""
  zone = tz or local_timezone()
  current = now.astimezone(zone) if now is not None else now_in_timezone(zone)
  tomorrow = current.date() + timedelta(days=1)
  return datetime.combine(tomorrow, time.min, tzinfo=zone)


def default_end(start: datetime, is_all_day: bool) -> datetime:
  if is_all_day:
    return start
  return start + DEFAULT_EVENT_DURATION
