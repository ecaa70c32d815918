from __future__ import annotations

import logging
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from .agent import ModelGateway, IntentPipeline
from .agent.summary_agent import summarize_day_for_journal, summarize_upcoming
from .config import API_BASE, STORE_BACKEND
from .errors import (
    AuthorizationError,
    IntentCalError,
    NoDestinationError,
    NotFoundError,
    ProtocolError,
    TransportError,
)
from .models import (
    ApplyRequest,
    ApplyResponse,
    CalendarDestination,
    ExtractRequest,
    ExtractResponse,
    Preferences,
    RunRequest,
    RunResult,
    ScheduleTarget,
    SummaryRequest,
    SummaryResponse,
)
from .state import CalendarStore, build_local_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_BASE)

_ERROR_STATUS = (
    (NotFoundError, 404),
    (NoDestinationError, 409),
    (AuthorizationError, 403),
    (TransportError, 502),
    (ProtocolError, 502),
)


@lru_cache(maxsize=1)
def get_store() -> CalendarStore:
  if STORE_BACKEND == "google":
    from .gcal import GoogleCalendarStore
    return GoogleCalendarStore()
  return build_local_store()


@lru_cache(maxsize=1)
def get_gateway() -> ModelGateway:
  return ModelGateway()


def get_pipeline(gateway: ModelGateway = Depends(get_gateway),
                 store: CalendarStore = Depends(get_store)) -> IntentPipeline:
  return IntentPipeline(gateway, store)


def _http_error(exc: IntentCalError) -> HTTPException:
  for error_type, status in _ERROR_STATUS:
    if isinstance(exc, error_type):
      return HTTPException(status_code=status, detail=exc.message)
  logger.exception("Unexpected pipeline error")
  return HTTPException(status_code=500, detail=exc.message)


@router.get("/health")
def health():
  return {"ok": True, "store": STORE_BACKEND}


@router.post("/intent/extract", response_model=ExtractResponse)
async def extract_intent(payload: ExtractRequest,
                         pipeline: IntentPipeline = Depends(get_pipeline)):
  if not payload.text.strip() and not payload.image:
    raise HTTPException(status_code=400, detail="Empty text")
  try:
    intent, raw_output = await pipeline.extract_intent(payload.text, image=payload.image)
  except IntentCalError as exc:
    raise _http_error(exc) from exc
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc)) from exc
  return ExtractResponse(intent=intent, raw_output=raw_output)


@router.post("/intent/apply", response_model=ApplyResponse)
async def apply_intent(payload: ApplyRequest,
                       pipeline: IntentPipeline = Depends(get_pipeline)):
  try:
    message = await pipeline.apply_intent(payload.intent,
                                          payload.preferences or Preferences(),
                                          payload.destination_id)
  except IntentCalError as exc:
    raise _http_error(exc) from exc
  return ApplyResponse(message=message)


@router.post("/intent/run", response_model=RunResult)
async def run_intent(payload: RunRequest,
                     pipeline: IntentPipeline = Depends(get_pipeline)):
  if not payload.text.strip() and not payload.image:
    raise HTTPException(status_code=400, detail="Empty text")
  try:
    return await pipeline.run(payload.text,
                              image=payload.image,
                              preferences=payload.preferences or Preferences())
  except IntentCalError as exc:
    raise _http_error(exc) from exc
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/summary", response_model=SummaryResponse)
async def schedule_summary(payload: SummaryRequest,
                           gateway: ModelGateway = Depends(get_gateway),
                           store: CalendarStore = Depends(get_store)):
  preferences = payload.preferences or Preferences()
  try:
    if payload.kind == "journal":
      summary = await summarize_day_for_journal(store, gateway, preferences, payload.start)
    else:
      summary = await summarize_upcoming(store, gateway, preferences, payload.start)
  except IntentCalError as exc:
    raise _http_error(exc) from exc
  return SummaryResponse(summary=summary)


@router.get("/destinations/{kind}", response_model=List[CalendarDestination])
async def list_destinations(kind: ScheduleTarget,
                            store: CalendarStore = Depends(get_store)):
  try:
    return await store.list_destinations(kind)
  except IntentCalError as exc:
    raise _http_error(exc) from exc
