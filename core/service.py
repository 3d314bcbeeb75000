"""TOGGLES FILE PURPOSE
Purpose: write-then-notify sequencing over a store and a notifier.
Hot path: no (flag writes are control-plane traffic).
Feature flags: none.
Failure mode: StorageError => nothing notified; NotifyError => write is kept.
"""

from __future__ import annotations

from typing import Iterable

from core.flags import Flag
from core.messaging import Notifier
from core.storage import Store, WritePolicy


def save_flags(store: Store, notifier: Notifier, flags: Iterable[Flag]) -> list[Flag]:
    """Overwrite `flags` in the store, then publish the same batch.

    The two steps are sequenced, not transactional: a NotifyError raised by
    the second step leaves the write in place.
    """
    batch = list(flags)
    store.write(batch, WritePolicy.OVERWRITE)
    notifier.notify(batch)
    return batch


def seed_flags(store: Store, flags: Iterable[Flag], service_name: str | None = None) -> list[Flag]:
    """Insert missing flags only and return what `service_name` now sees.

    Seeding establishes defaults, it is not a change, so nothing is published.
    """
    store.write(list(flags), WritePolicy.KEEP_EXISTING)
    return store.read(service_name)
