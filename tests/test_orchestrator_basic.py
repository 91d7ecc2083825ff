import json

import pytest

import cli
from penguin_stats import orchestrator
from penguin_stats.client import PenguinClient
from penguin_stats.orchestrator import _apply_overrides, load_config, parse_drop, run_once

from fakes import MATRIX, FakeResponse, FakeSession


def _write(tmp_path, text):
    p = tmp_path / "cfg.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_load_config_env_then_file(tmp_path, monkeypatch):
    monkeypatch.setenv("PENGUIN_TIMEOUT", "9")
    monkeypatch.setenv("PENGUIN_SERVER", "jp")
    cfg = load_config(_write(tmp_path, "query:\n  server: US\n"))
    assert cfg["client"]["timeout"] == 9.0
    assert cfg["query"]["server"] == "US"


def test_load_config_rejects_unknown_keys(tmp_path):
    with pytest.raises(ValueError, match="Config validation error"):
        load_config(_write(tmp_path, "query:\n  serverr: US\n"))


def test_overrides_win():
    cfg = {"query": {"server": "CN"}, "client": {"timeout": 5}}
    _apply_overrides(cfg, {"server": "KR", "timeout": 3, "stage_id": None, "source": "app", "output_dir": "out"})
    assert cfg["query"]["server"] == "KR"
    assert cfg["client"]["timeout"] == 3.0
    assert "stage_id" not in cfg["query"]
    assert cfg["report"]["source"] == "app"
    assert cfg["output"]["dir"] == "out"


def test_parse_drop():
    d = parse_drop("special_drop:30012:2")
    assert (d.drop_type, d.item_id, d.quantity) == ("SPECIAL_DROP", "30012", 2)
    assert parse_drop("30011:1").drop_type == "NORMAL_DROP"
    with pytest.raises(ValueError):
        parse_drop("30011")


def test_run_once_matrix_stage_lookup(capsys):
    session = FakeSession(FakeResponse(200, MATRIX))
    client = PenguinClient(session=session)
    out = run_once(None, "matrix", overrides={"stage_id": "main_01-07", "index": True}, client=client)
    assert [r["itemId"] for r in out] == ["30012", "30011"]
    printed = json.loads(capsys.readouterr().out)
    assert printed == out


def test_run_once_writes_output(tmp_path):
    session = FakeSession(FakeResponse(201, {"reportHash": "abc"}))
    client = PenguinClient(session=session)
    cfg_path = _write(tmp_path, f"output:\n  dir: {tmp_path / 'out'}\n  formats: [json, md]\n")
    out = run_once(
        cfg_path,
        "report",
        params={"stage_id": "main_01-07", "drops": ["30012:2"]},
        client=client,
    )
    assert out == {"reportHash": "abc"}
    files = sorted(p.suffix for p in (tmp_path / "out").iterdir())
    assert files == [".json", ".md"]


def test_run_once_unknown_command():
    with pytest.raises(ValueError):
        run_once(None, "dance", client=PenguinClient(session=FakeSession()))


def test_cli_reports_errors(monkeypatch, capsys):
    def boom(*args, **kwargs):
        raise ValueError("personal stats specified but no user ID provided")

    monkeypatch.setattr(cli, "run_once", boom)
    assert cli.main(["matrix", "--personal"]) == 1
    assert "no user ID" in capsys.readouterr().err


def test_cli_passes_overrides(monkeypatch):
    seen = {}

    def fake_run_once(config_path, command, *, params=None, overrides=None):
        seen.update(config=config_path, command=command, params=params, overrides=overrides)
        return []

    monkeypatch.setattr(cli, "run_once", fake_run_once)
    assert cli.main(["--server", "us", "matrix", "--stage", "main_01-07", "--index"]) == 0
    assert seen["command"] == "matrix"
    assert seen["overrides"]["server"] == "US"
    assert seen["overrides"]["index"] is True
    assert seen["overrides"]["is_personal"] is None
    assert orchestrator.COMMANDS[0] == "matrix"


def test_load_config_malformed_yaml(tmp_path):
    with pytest.raises(ValueError, match="Config validation error"):
        load_config(_write(tmp_path, "query: [server: US\n"))


def test_cli_malformed_yaml_exits_cleanly(tmp_path, capsys):
    assert cli.main(["--config", _write(tmp_path, "query: [server: US\n"), "stages"]) == 1
    assert "not valid YAML" in capsys.readouterr().err


def test_plan_request_must_be_object(tmp_path):
    req = tmp_path / "plan.json"
    req.write_text('[{"required": {}}]', encoding="utf-8")
    session = FakeSession()
    with pytest.raises(ValueError, match="JSON object"):
        run_once(None, "plan", params={"request_path": str(req)}, overrides={"server": "US"}, client=PenguinClient(session=session))
    assert session.calls == []
