"""Seed default flags into the configured store (no HTTP).

Reads a JSON array of flag objects ({name, serviceName, rawValue, value}) and
inserts the ones not already stored. Existing flags are never modified and
nothing is published to the bus.

Prints {status, given, inserted, total}: total counts every stored flag afterwards.

Exit: 0 on success, 2 on unreadable input or store failure.

Supported invocation from repo root:
  TOGGLES_STORAGE=mongo python scripts/seed_flags.py defaults.json
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pydantic import TypeAdapter, ValidationError  # noqa: E402

from core.config import load_settings  # noqa: E402
from core.errors import StorageError  # noqa: E402
from core.flags import Flag  # noqa: E402
from core.service import seed_flags  # noqa: E402
from core.storage import build_store  # noqa: E402


def load_flags(path: Path) -> list[Flag]:
    return TypeAdapter(list[Flag]).validate_python(json.loads(path.read_text(encoding="utf-8")))


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("usage: seed_flags.py <flags.json>", file=sys.stderr)
        return 2

    try:
        flags = load_flags(Path(args[0]))
    except (OSError, ValueError, ValidationError) as exc:
        print(f"SEED_INPUT_INVALID: {exc}", file=sys.stderr)
        return 2

    try:
        store = build_store(load_settings())
    except StorageError as exc:
        print(f"SEED_FAILED: {exc}", file=sys.stderr)
        return 2

    try:
        before = {f.key for f in store.read()}
        visible = seed_flags(store, flags)
    except StorageError as exc:
        print(f"SEED_FAILED: {exc}", file=sys.stderr)
        return 2
    finally:
        store.close()

    inserted = len({f.key for f in visible} - before)
    print(json.dumps({"status": "ok", "given": len(flags), "inserted": inserted, "total": len(visible)}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
