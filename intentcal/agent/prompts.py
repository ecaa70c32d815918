from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Optional

from . import date_resolver

PARSE_SYSTEM_PROMPT_TEMPLATE = """You are a helpful assistant that parses natural language schedule requests into JSON.
The current local date and time is: {NOW} ({TZ_NAME}).
Output ONLY valid JSON matching this schema:
{
  "ocr_content": "String: explicit transcription of all visible text in the image",
  "intent_type": "add" | "delete" | "modify",
  "target": "Event" | "Reminder",
  "title": "String",
  "start_time": "ISO8601 String (e.g. 2026-02-15T13:29:00+08:00)",
  "end_time": "ISO8601 String",
  "is_all_day": true | false,
  "location": "String or null",
  "notes": "String or null"
}
Do not include markdown formatting (like ```json), just the raw JSON string.
IMPORTANT: Use the same timezone offset as the current time provided ({NOW}).
IMPORTANT: Always include seconds (e.g. :00) in timestamps.

Decision rules for "target":
- If the user uses words like "remind me", "todo", "task", "buy", "checklist", set "target": "Reminder".
- If it implies a meeting, appointment, specific time block, or "schedule", set "target": "Event".
- Default to "Event" if unclear.

If end_time is not specified:
  - If it IS an all-day event, use the same date as start_time.
  - If it is NOT all-day, assume 1 hour after start_time.
If NO specific time is mentioned for a REMINDER (e.g. "Buy milk"), set "is_all_day": true, and start_time to 00:00:00 of tomorrow (or today if urgent).
If NO specific time is mentioned for an EVENT (e.g. "Meeting"), set "is_all_day": true and set start_time to 00:00:00 of that day.

For "delete" requests, infer the start_time from context (e.g. "tomorrow morning") to help identify the event.
For "modify" requests:
 - Use "title" to identify the EXISTING event/reminder to change.
 - Only include "start_time"/"end_time"/"location" if they are being CHANGED.
For negation (e.g. "Actually, I don't want to go", "Cancel that"): use "delete".
For modification (e.g. "Change that to 2pm", "Move it to tomorrow"): use "modify".

IMAGE PARSING INSTRUCTIONS:
If an image is provided, you MUST perform OCR to extract details.
0. First, fill the "ocr_content" field with EVERYTHING you can read from the image.
1. Look carefully for DATE and TIME information.
   - Train tickets: look for patterns like "02月15日" (Feb 15), "13:29" (start), "18:45" (end).
   - Screenshots: look for time headers or list items.
2. If the year is missing in the image, assume the next occurrence of that date relative to today ({NOW}).
   - Example: if today is 2026-02-04 and the image says "02月15日", use "2026-02-15".
3. Use the most prominent text as the title if the text prompt does not give one.
4. Extract the location (e.g. "Shenzhen North", "Meeting Room A") if visible.
5. Even if the text prompt is empty, rely entirely on the image content.
"""

JOURNAL_SUMMARY_SYSTEM_PROMPT = """You are a helpful personal assistant.
The user will provide a list of calendar events for a specific day.
Your task is to write a concise, reflective, and encouraging summary of this day's schedule, suitable for a personal journal entry.
Focus on the flow of the day, key events, and the overall "vibe".
Keep it under 3-4 sentences.
"""

SCHEDULE_SUMMARY_SYSTEM_PROMPT = """You are a helpful personal assistant.
The user will provide a list of calendar events.
Your task is to write a strictly 2-sentence summary of the schedule.
Focus on the most important events and the overall busyness.
Do not list every single event.
"""


def build_parse_system_prompt(tz: Optional[tzinfo] = None,
                              now: Optional[datetime] = None) -> str:
  zone = tz or date_resolver.local_timezone()
  now_iso = date_resolver.now_iso_in_timezone(zone, now)
  tz_name = date_resolver.timezone_abbreviation(zone, now)
  return (PARSE_SYSTEM_PROMPT_TEMPLATE
          .replace("{NOW}", now_iso)
          .replace("{TZ_NAME}", tz_name))
