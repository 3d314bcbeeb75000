"""TOGGLES FILE PURPOSE
Purpose: error taxonomy shared by the store and notifier backends and the flag client.
Hot path: no.
Feature flags: none.
Failure mode: n/a (definitions only).
"""

from __future__ import annotations


class ToggleError(Exception):
    """Base class for errors surfaced by flag storage or notification."""


class StorageError(ToggleError):
    """Backend unreachable, stored record undecodable, or constraint violated."""


class NotifyError(ToggleError):
    """Bus unreachable, payload not serializable, or destination rejected."""


class ClientError(ToggleError):
    """Toggle server unreachable, answered with an error status, or sent undecodable flags."""
