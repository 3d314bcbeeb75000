"""TOGGLES FILE PURPOSE
Purpose: create FastAPI app wired to the configured flag store and notifier.
Hot path: no (startup/shutdown only).
Feature flags: TOGGLES_STORAGE, TOGGLES_MESSAGING, TOGGLES_API_PATH.
Failure mode: store init failure => startup fails; notifier init failure => noop notifier;
  backends are closed on shutdown, notifier first.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from core.config import api_path as configured_api_path
from core.config import load_settings, normalize_api_path
from core.errors import NotifyError
from core.logging import logger
from core.messaging import Notifier, NoopNotifier, build_notifier
from core.storage import Store, build_store
from features.flags_api import router as flags_router


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    try:
        app.state.notifier.close()
    finally:
        app.state.store.close()
    logger.info("SHUTDOWN backends closed")


def create_app(
    store: Store | None = None,
    notifier: Notifier | None = None,
    api_path: str | None = None,
) -> FastAPI:
    if store is None or notifier is None:
        settings = load_settings()
        if store is None:
            store = build_store(settings)
        if notifier is None:
            try:
                notifier = build_notifier(settings)
            except NotifyError as exc:
                logger.warning("NOTIFIER_UNAVAILABLE kind=%s err=%s fallback=noop", settings.messaging, exc)
                notifier = NoopNotifier()
    prefix = configured_api_path() if api_path is None else normalize_api_path(api_path)
    logger.info("STARTUP storage=%s messaging=%s api_path=%s", store.kind, notifier.kind, prefix)

    app = FastAPI(lifespan=_lifespan)
    app.state.store = store
    app.state.notifier = notifier

    @app.get("/")
    async def root() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(flags_router, prefix=prefix)
    return app
