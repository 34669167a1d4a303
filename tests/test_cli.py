# AutoBlockIP - CLI and entrypoint tests
import json
from datetime import datetime, timezone

import pytest
import yaml

from autoblockip import cli, main as entry
from autoblockip.models import ExitCode


@pytest.fixture
def feed_config(tmp_path):
    feed = tmp_path / "feed.jsonl"
    lines = [
        {"timestamp": datetime.now(timezone.utc).isoformat(), "target_account": "bob", "source_address": "10.0.0.1"}
        for _ in range(4)
    ]
    feed.write_text("\n".join(json.dumps(line) for line in lines) + "\n")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump({
        "feed": {"source": "jsonl", "path": str(feed)},
        "audit": {"file": str(tmp_path / "audit.jsonl")},
    }))
    return cfg_path


def test_scan_prints_json(feed_config, capsys):
    assert cli.main(["--config", str(feed_config), "scan"]) == ExitCode.OK
    out = json.loads(capsys.readouterr().out)
    assert out["suspicious"] == ["10.0.0.1"]
    assert out["counts"] == {"10.0.0.1": 4}


def test_scan_with_missing_feed(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump({"feed": {"source": "jsonl", "path": str(tmp_path / "none.jsonl")}}))
    assert cli.main(["--config", str(cfg_path), "scan"]) == ExitCode.FEED_UNAVAILABLE


def test_run_rejects_invalid_config(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump({"detection": {"threshold": -5}}))
    assert cli.main(["--config", str(cfg_path), "run"]) == ExitCode.UNEXPECTED_ERROR


def test_setup_and_config_set(tmp_path, capsys):
    assert cli.main(["setup", "--config-dir", str(tmp_path)]) == ExitCode.OK
    cfg_path = tmp_path / "config.yaml"
    assert cfg_path.exists()
    assert cli.main(["--config", str(cfg_path), "config", "set", "detection.threshold", "9"]) == ExitCode.OK
    assert yaml.safe_load(cfg_path.read_text())["detection"]["threshold"] == 9
    assert cli.main(["--config", str(cfg_path), "config", "validate"]) == ExitCode.OK


def test_export_audit_empty(tmp_path, capsys):
    assert cli.main(["export-audit", "--path", str(tmp_path / "none.jsonl")]) == ExitCode.OK
    assert capsys.readouterr().out.strip() == "[]"


def test_entrypoint_exit_code_on_unexpected_error(monkeypatch):
    def boom(argv=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(cli, "main", boom)
    with pytest.raises(SystemExit) as exc:
        entry.main([])
    assert exc.value.code == int(ExitCode.UNEXPECTED_ERROR)


def test_prefix_filter():
    import logging

    record = logging.LogRecord("autoblockip", logging.INFO, __file__, 1, "hello %s", ("x",), None)
    f = entry.PrefixFilter("[host1] ")
    assert f.filter(record)
    assert f.filter(record)
    assert record.getMessage() == "[host1] hello x"


def test_run_pause_without_stdin(feed_config, monkeypatch):
    async def fake_run(config, dry_run):
        return ExitCode.OK

    def no_stdin(prompt=""):
        raise EOFError

    monkeypatch.setattr(cli, "cmd_run", fake_run)
    monkeypatch.setattr("builtins.input", no_stdin)
    assert cli.main(["--config", str(feed_config), "run", "--pause"]) == ExitCode.OK
