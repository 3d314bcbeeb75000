from __future__ import annotations

import json

from core.flags import Flag
from core.storage import MemStore
from scripts.seed_flags import load_flags, main


def test_load_flags_reads_wire_format(tmp_path) -> None:
    path = tmp_path / "defaults.json"
    path.write_text(json.dumps([{"name": "beta", "serviceName": "", "rawValue": "true", "value": True}]), encoding="utf-8")
    assert load_flags(path) == [Flag(name="beta", raw_value="true", value=True)]


def test_seed_main_keeps_existing_flags(monkeypatch, tmp_path, capsys) -> None:
    store = MemStore()
    store.write([Flag(name="beta", raw_value="false", value=False)])
    monkeypatch.setattr("scripts.seed_flags.build_store", lambda settings: store)

    path = tmp_path / "defaults.json"
    path.write_text(
        json.dumps(
            [
                {"name": "beta", "serviceName": "", "rawValue": "true", "value": True},
                {"name": "gamma", "serviceName": "checkout", "rawValue": "1", "value": True},
            ]
        ),
        encoding="utf-8",
    )

    assert main([str(path)]) == 0
    assert json.loads(capsys.readouterr().out) == {"status": "ok", "given": 2, "inserted": 1, "total": 2}
    assert sorted(store.read(), key=lambda f: f.name) == [
        Flag(name="beta", raw_value="false", value=False),
        Flag(name="gamma", service_name="checkout", raw_value="1", value=True),
    ]


def test_seed_main_rejects_bad_input(tmp_path, capsys) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")
    assert main([str(path)]) == 2
    assert "SEED_INPUT_INVALID" in capsys.readouterr().err

    assert main([]) == 2
