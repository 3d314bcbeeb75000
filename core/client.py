"""TOGGLES FILE PURPOSE
Purpose: in-process flag client for services reading toggles from the flag server.
Hot path: yes for get()/get_raw() (lock + dict lookup); HTTP only on seed/poll.
Feature flags: FEATURE_<SERVICE>_<NAME>, FEATURE__GLOBAL__<NAME>, FEATURE__GLOBAL__TOGGLE_SERVER.
Failure mode:
  - server errors => ClientError from seed()/refresh(); cache keeps last good flags
  - background loop logs failures, retries seeding with linear backoff, keeps polling
  - no server address => env flags only, nothing started
"""

from __future__ import annotations

import os
import threading
from typing import Mapping

import httpx
from pydantic import TypeAdapter, ValidationError

from core.config import DEFAULT_API_PATH, is_debug, normalize_api_path
from core.errors import ClientError
from core.flags import GLOBAL_SERVICE, Flag, flags_to_records
from core.logging import flag_summary, logger

FEATURE_PREFIX = "FEATURE_"
GLOBAL_MARKER = "_GLOBAL__"
SERVER_ADDRESS_FLAG = "TOGGLE_SERVER"
TRUE_VALUES = ("1", "y", "yes", "t", "true")

DEFAULT_POLL_INTERVAL_S = 30 * 60.0
DEFAULT_TIMEOUT_S = 10.0

_FLAG_LIST = TypeAdapter(list[Flag])


def _dbg(msg: str) -> None:
    if is_debug():
        logger.info(msg)


def normalize_name(name: str) -> str:
    """Lowercase, with every non-alphanumeric character turned into a dot."""
    return "".join(c.lower() if c.isalnum() else "." for c in name)


def normalize_service_name(name: str) -> str:
    return name.lower()


def _normalized(f: Flag) -> Flag:
    return f.model_copy(update={"name": normalize_name(f.name), "service_name": normalize_service_name(f.service_name)})


def parse_env(env: Mapping[str, str], service_name: str) -> list[Flag]:
    """Collect FEATURE_* variables for `service_name` plus global ones.

    FEATURE_<SERVICE>_<NAME>=v scopes a flag to SERVICE; FEATURE__GLOBAL__<NAME>=v
    makes it global. Empty values and other services' flags are skipped.
    """
    own = normalize_service_name(service_name)
    flags: list[Flag] = []
    for var in sorted(env):
        raw = env[var]
        if not var.startswith(FEATURE_PREFIX) or not raw:
            continue
        key = var[len(FEATURE_PREFIX):]
        if key.startswith(GLOBAL_MARKER):
            service, name = GLOBAL_SERVICE, key[len(GLOBAL_MARKER):]
        else:
            service, sep, name = key.partition("_")
            if not sep:
                continue
        service = normalize_service_name(service)
        if service not in (GLOBAL_SERVICE, own) or not name:
            continue
        flags.append(
            Flag(
                name=normalize_name(name),
                service_name=service,
                raw_value=raw,
                value=raw.lower() in TRUE_VALUES,
            )
        )
    return flags


class FlagClient:
    """Caches the flags visible to one service and serves lookups from memory.

    The cache starts from the environment (parse_env), is replaced by the
    server's answer to seed() and then by every refresh(). Lookups only take
    the lock long enough to fetch a name's entries.
    """

    def __init__(
        self,
        service_name: str,
        http_client: httpx.Client | None = None,
        api_path: str = DEFAULT_API_PATH,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self.service_name = normalize_service_name(service_name)
        if not self.service_name:
            raise ValueError("service name is required")
        self._http = http_client
        self._owns_http = False
        self._path = normalize_api_path(api_path)
        self._poll_interval_s = poll_interval_s
        self._flags: dict[str, list[Flag]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # cache

    def _replace(self, flags: list[Flag]) -> None:
        by_name: dict[str, list[Flag]] = {}
        for f in map(_normalized, flags):
            if not f.visible_to(self.service_name):
                continue
            by_name.setdefault(f.name, []).append(f)
        with self._lock:
            self._flags = by_name

    def _lookup(self, name: str, include_global: bool) -> Flag | None:
        with self._lock:
            entries = self._flags.get(normalize_name(name), [])
        # service-scoped entries shadow global ones
        for f in entries:
            if f.service_name == self.service_name:
                return f
        if include_global:
            for f in entries:
                if f.is_global:
                    return f
        return None

    def flags(self) -> list[Flag]:
        with self._lock:
            snapshot = [f for entries in self._flags.values() for f in entries]
        return sorted(snapshot, key=lambda f: (f.name, f.service_name))

    def parse_env(self, env: Mapping[str, str] | None = None) -> list[Flag]:
        flags = parse_env(os.environ if env is None else env, self.service_name)
        self._replace(flags)
        _dbg(f"CLIENT_ENV service={self.service_name} flags={flag_summary(flags)}")
        return flags

    def get(self, name: str, default: bool = False, *, include_global: bool = False) -> bool:
        f = self._lookup(name, include_global)
        return default if f is None else f.value

    def get_raw(self, name: str, default: str = "", *, include_global: bool = False) -> str:
        f = self._lookup(name, include_global)
        return default if f is None else f.raw_value

    def server_address(self) -> str:
        return self.get_raw(SERVER_ADDRESS_FLAG, include_global=True)

    # server

    def _request(self, method: str, path: str, payload: list | None = None) -> list[Flag]:
        if self._http is None:
            raise ClientError("no toggle server configured")
        try:
            resp = self._http.request(method, path, json=payload)
            resp.raise_for_status()
            return _FLAG_LIST.validate_python(resp.json())
        except httpx.HTTPStatusError as exc:
            raise ClientError(f"invalid status code for {method} {path}: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ClientError(f"requesting {method} {path}: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise ClientError(f"decoding flag data: {exc}") from exc

    def seed(self) -> list[Flag]:
        """Send the env flags as defaults, then cache the server's view."""
        local = self.flags()
        if not local:
            # the server rejects an empty seed batch
            return self.refresh()
        flags = self._request("POST", f"{self._path}/{self.service_name}/initial", flags_to_records(local))
        self._replace(flags)
        _dbg(f"CLIENT_SEEDED service={self.service_name} sent={len(local)} received={len(flags)}")
        return self.flags()

    def refresh(self) -> list[Flag]:
        flags = self._request("GET", f"{self._path}/{self.service_name}")
        self._replace(flags)
        _dbg(f"CLIENT_POLLED service={self.service_name} received={len(flags)}")
        return self.flags()

    # background

    def _run(self) -> None:
        backoff = 1
        while not self._stop.is_set():
            try:
                self.seed()
                break
            except ClientError as exc:
                logger.warning("CLIENT_SEED_FAILED service=%s err=%s retry_s=%s", self.service_name, exc, backoff)
                if self._stop.wait(backoff):
                    return
                backoff += 1

        while not self._stop.wait(self._poll_interval_s):
            try:
                self.refresh()
            except ClientError as exc:
                logger.warning("CLIENT_POLL_FAILED service=%s err=%s", self.service_name, exc)

    def connect(self) -> bool:
        """Start seeding and polling in a daemon thread; False when no server is known."""
        if self._thread is not None:
            return True
        if self._http is None:
            addr = self.server_address()
            if not addr:
                _dbg(f"CLIENT_LOCAL_ONLY service={self.service_name}")
                return False
            self._http = httpx.Client(base_url=addr, timeout=DEFAULT_TIMEOUT_S)
            self._owns_http = True
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"flag-client-{self.service_name}", daemon=True)
        self._thread.start()
        return True

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=DEFAULT_TIMEOUT_S)
            self._thread = None
        if self._owns_http and self._http is not None:
            self._http.close()
            self._http = None
            self._owns_http = False


def from_env(service_name: str, env: Mapping[str, str] | None = None, **kwargs) -> FlagClient:
    """Build a client whose cache starts from FEATURE_* variables."""
    client = FlagClient(service_name, **kwargs)
    client.parse_env(env)
    return client
