import json

from typer.testing import CliRunner

from wa_operator import __version__
from wa_operator.cli.commands import app

runner = CliRunner()


def test_top_level_without_args_shows_help():
    result = runner.invoke(app, [])
    assert result.exit_code in {0, 2}
    assert "Usage: wa-operator" in result.stdout


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_config_init_creates_then_merges(tmp_path, monkeypatch):
    monkeypatch.setenv("WA_OPERATOR_DATA_DIR", str(tmp_path))

    result = runner.invoke(app, ["config-init"])
    assert result.exit_code == 0
    assert "Created config" in result.stdout

    path = tmp_path / "config.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    data["persona"]["ownerJid"] = "977@s.whatsapp.net"
    del data["safety"]
    path.write_text(json.dumps(data), encoding="utf-8")

    result = runner.invoke(app, ["config-init"])
    assert result.exit_code == 0
    assert "Merged config" in result.stdout
    merged = json.loads(path.read_text(encoding="utf-8"))
    assert merged["persona"]["ownerJid"] == "977@s.whatsapp.net"
    assert merged["safety"]["rateLimitMax"] == 15

    runner.invoke(app, ["config-init", "--force"])
    assert json.loads(path.read_text(encoding="utf-8"))["persona"]["ownerJid"] == ""


def test_status_reports_store_and_metrics(tmp_path, monkeypatch):
    monkeypatch.setenv("WA_OPERATOR_DATA_DIR", str(tmp_path))

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Stored data" in result.stdout
    assert "LLM calls" in result.stdout


def test_run_refuses_when_whatsapp_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("WA_OPERATOR_DATA_DIR", str(tmp_path))
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 1
    assert "WhatsApp channel is disabled" in result.stdout
