"""TOGGLES FILE PURPOSE
Purpose: FastAPI entrypoint for the feature toggles service.
Hot path: no (process-level startup only).
Feature flags: TOGGLES_STORAGE, TOGGLES_MESSAGING.
Failure mode: fail fast on import errors or an unreachable store.
"""

from core.app import create_app

app = create_app()
