from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import cors_origins, LLM_DEBUG
from .routes import router


def create_app() -> FastAPI:
  logging.basicConfig(level=logging.DEBUG if LLM_DEBUG else logging.INFO)
  app = FastAPI(title="intentcal")
  if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
  app.include_router(router)
  return app


app = create_app()
