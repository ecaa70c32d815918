from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from ..config import (
    EMPTY_IMAGE_PROMPT,
    PARSE_TEMPERATURE,
    JOURNAL_SUMMARY_TEMPERATURE,
    SCHEDULE_SUMMARY_TEMPERATURE,
)
from ..errors import ProtocolError, TransportError
from ..models import LLMSettings, ScheduleIntent, get_llm_settings
from ..utils import ImageInput, encode_image_data_url
from . import date_resolver
from .normalizer import fallback_title, normalize, strip_code_fence
from .prompts import (
    build_parse_system_prompt,
    JOURNAL_SUMMARY_SYSTEM_PROMPT,
    SCHEDULE_SUMMARY_SYSTEM_PROMPT,
)


def _print_raw_output(*,
                      kind: str,
                      model: str,
                      raw_output: str,
                      enabled: bool) -> None:
  if not enabled:
    return
  print(f"[LLM RAW] kind={kind} model={model}", flush=True)
  print(raw_output if raw_output else "(empty)", flush=True)
  print("[LLM RAW END]", flush=True)


def _compose_messages(system_prompt: str,
                      user_text: str,
                      image_url: Optional[str]) -> List[Dict[str, Any]]:
  messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
  if image_url:
    messages.append({
        "role": "user",
        "content": [
            {
                "type": "text",
                "text": user_text if user_text.strip() else EMPTY_IMAGE_PROMPT,
            },
            {
                "type": "image_url",
                "image_url": {"url": image_url},
            },
        ],
    })
  else:
    messages.append({"role": "user", "content": user_text})
  return messages


def _extract_message_content(completion: Any) -> str:
  choices = getattr(completion, "choices", None)
  if not isinstance(choices, list) or not choices:
    raise ProtocolError("Invalid API Response Structure")
  message = getattr(choices[0], "message", None)
  content = getattr(message, "content", None)
  if not isinstance(content, str):
    raise ProtocolError("Invalid API Response Structure")
  return content.strip()


class ModelGateway:
  """Single request/response exchange with an OpenAI-compatible chat endpoint.

  No retries and no streaming: one call, one POST. Retry policy belongs to the
  caller.
  """

  def __init__(self,
               settings: Optional[LLMSettings] = None,
               client: Optional[AsyncOpenAI] = None,
               tz: Optional[tzinfo] = None) -> None:
    self.settings = settings or get_llm_settings()
    self._client = client
    self.tz = tz or date_resolver.local_timezone()

  def _get_client(self) -> AsyncOpenAI:
    if self._client is None:
      api_key = self.settings.current_api_key
      if not api_key:
        raise TransportError("LLM_API_KEY is not set")
      self._client = AsyncOpenAI(
          api_key=api_key,
          base_url=self.settings.current_base_url,
          timeout=self.settings.timeout_seconds,
          max_retries=0,
      )
    return self._client

  async def request_completion(self,
                               system_prompt: str,
                               user_text: str,
                               image: Optional[ImageInput] = None,
                               temperature: float = PARSE_TEMPERATURE) -> str:
    image_url = encode_image_data_url(image) if image is not None else None
    messages = _compose_messages(system_prompt, user_text or "", image_url)
    client = self._get_client()
    model = self.settings.current_model

    try:
      raw_response = await client.chat.completions.with_raw_response.create(
          model=model,
          messages=messages,
          temperature=temperature,
      )
    except openai.APIResponseValidationError as exc:
      raise ProtocolError(f"Invalid API Response Structure: {exc}") from exc
    except openai.APIStatusError as exc:
      body = exc.response.text if exc.response is not None else str(exc)
      raise TransportError(f"API Error: {body}", status_code=exc.status_code) from exc
    except openai.APIConnectionError as exc:
      raise TransportError(f"Could not reach the language model: {exc}") from exc

    if raw_response.status_code != 200:
      raise TransportError(f"API Error: {raw_response.text}",
                           status_code=raw_response.status_code)
    try:
      completion = raw_response.parse()
    except ValueError as exc:
      raise ProtocolError(f"Invalid API Response Structure: {exc}") from exc

    content = _extract_message_content(completion)
    _print_raw_output(kind="completion",
                      model=model,
                      raw_output=content,
                      enabled=self.settings.show_debug_output)
    return content

  async def parse(self,
                  text: str,
                  image: Optional[ImageInput] = None,
                  now: Optional[datetime] = None) -> Tuple[ScheduleIntent, str]:
    system_prompt = build_parse_system_prompt(self.tz, now)
    raw_output = await self.request_completion(system_prompt,
                                               text or "",
                                               image=image,
                                               temperature=PARSE_TEMPERATURE)
    cleaned = strip_code_fence(raw_output)
    intent = normalize(cleaned, fallback_title(text), now=now, tz=self.tz)
    return intent, cleaned

  async def summarize(self, schedule_text: str) -> str:
    return await self.request_completion(JOURNAL_SUMMARY_SYSTEM_PROMPT,
                                         schedule_text,
                                         temperature=JOURNAL_SUMMARY_TEMPERATURE)

  async def generate_schedule_summary(self, schedule_text: str) -> str:
    return await self.request_completion(SCHEDULE_SUMMARY_SYSTEM_PROMPT,
                                         schedule_text,
                                         temperature=SCHEDULE_SUMMARY_TEMPERATURE)
