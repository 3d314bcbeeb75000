"""TOGGLES FILE PURPOSE
Purpose: flag query and write HTTP routes over the app's store and notifier.
Hot path: yes for GET /flags (service startup polling); writes are control plane.
Feature flags: none (always mounted).
Failure mode:
  - store/notifier errors => 500 with the error as a JSON string body
  - invalid write body => 400
  - notify failure after a write => 500, write is kept
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError

from core.config import is_debug
from core.errors import NotifyError, StorageError
from core.flags import Flag, flags_to_records
from core.logging import flag_summary, logger
from core.messaging import Notifier
from core.service import save_flags, seed_flags
from core.storage import Store

# mounted under TOGGLES_API_PATH (default /flags) by core.app
router = APIRouter(tags=["flags"])

_FLAG_LIST = TypeAdapter(list[Flag])


def _dbg(msg: str) -> None:
    if is_debug():
        logger.info(msg)


def _store(request: Request) -> Store:
    return request.app.state.store


def _notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content=str(exc))


def _read(store: Store, service_name: str | None) -> Response:
    try:
        flags = store.read(service_name or None)
    except StorageError as exc:
        logger.warning("STORE_READ_FAILED service=%s err=%s", service_name or "", exc)
        return _error(exc)
    return JSONResponse(content=flags_to_records(flags))


async def _flags_from_body(request: Request, service_name: str) -> list[Flag]:
    raw = await request.body()
    try:
        payload: Any = json.loads(raw or b"null")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"invalid json: {exc}") from exc

    try:
        flags = _FLAG_LIST.validate_python(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"invalid flags: {exc.error_count()} errors") from exc

    if not flags:
        raise HTTPException(status_code=400, detail="No flags given")

    for f in flags:
        if not f.visible_to(service_name):
            raise HTTPException(status_code=400, detail=f"Invalid flag: {f.to_record()}")
    return flags


@router.get("")
async def flags_list(request: Request, service_name: str | None = Query(default=None)) -> Response:
    return _read(_store(request), service_name)


@router.get("/{service_name}")
async def flags_for_service(request: Request, service_name: str) -> Response:
    return _read(_store(request), service_name)


@router.post("/{service_name}")
async def flags_save(request: Request, service_name: str) -> Response:
    flags = await _flags_from_body(request, service_name)
    try:
        save_flags(_store(request), _notifier(request), flags)
    except StorageError as exc:
        logger.warning("STORE_WRITE_FAILED service=%s err=%s", service_name, exc)
        return _error(exc)
    except NotifyError as exc:
        logger.warning("NOTIFY_FAILED service=%s flags=%s err=%s", service_name, flag_summary(flags), exc)
        return _error(exc)
    _dbg(f"FLAGS_SAVED service={service_name} flags={flag_summary(flags)}")
    return Response(status_code=204)


@router.post("/{service_name}/initial")
async def flags_seed(request: Request, service_name: str) -> Response:
    flags = await _flags_from_body(request, service_name)
    try:
        visible = seed_flags(_store(request), flags, service_name)
    except StorageError as exc:
        logger.warning("STORE_SEED_FAILED service=%s err=%s", service_name, exc)
        return _error(exc)
    _dbg(f"FLAGS_SEEDED service={service_name} count={len(flags)}")
    return JSONResponse(content=flags_to_records(visible))
