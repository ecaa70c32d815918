from __future__ import annotations

from datetime import datetime
import logging
from typing import Iterable, List, Optional, Tuple

from ..errors import NotFoundError
from ..models import CalendarItem, MatchCandidate, ScheduleIntent

logger = logging.getLogger(__name__)


def titles_match(intent_title: str, item_title: Optional[str]) -> bool:
  """Symmetric, case-insensitive containment of two titles."""
  left = (intent_title or "").strip().casefold()
  right = (item_title or "").strip().casefold()
  if not left or not right:
    return False
  return left in right or right in left


def _within_window(item: CalendarItem,
                   window: Optional[Tuple[datetime, datetime]]) -> bool:
  if window is None:
    return True
  start = item.start_time or item.due_or_end_time
  if start is None:
    return False
  end = item.due_or_end_time or start
  window_start, window_end = window
  return start <= window_end and end >= window_start


def collect_candidates(intent: ScheduleIntent,
                       snapshot: Iterable[CalendarItem]) -> List[MatchCandidate]:
  window = intent.target.search_window(intent.type, intent.start_date)
  candidates: List[MatchCandidate] = []
  for item in snapshot:
    if item.kind is not intent.target:
      continue
    if not _within_window(item, window):
      continue
    if titles_match(intent.title, item.title):
      candidates.append(MatchCandidate(item=item, score=True))
  return candidates


def resolve(intent: ScheduleIntent,
            snapshot: Iterable[CalendarItem]) -> CalendarItem:
  candidates = collect_candidates(intent, snapshot)
  if not candidates:
    raise NotFoundError(f"No matching {intent.target.label} found.")
  if len(candidates) > 1:
    # First match wins; the others are only reported.
    logger.warning("Ambiguous %s match for %r: %s", intent.target.label,
                   intent.title, [c.item.title for c in candidates])
  return candidates[0].item
