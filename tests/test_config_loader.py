import json
from pathlib import Path

from wa_operator.config.loader import camel_to_snake, convert_keys, load_config, save_config, snake_to_camel
from wa_operator.config.schema import Config


def test_save_writes_camel_case_and_round_trips(tmp_path: Path):
    config = Config()
    config.persona.owner_jid = "977@s.whatsapp.net"
    config.provider.api_keys = ["k1", "k2"]
    path = save_config(config, tmp_path / "config.json")

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["persona"]["ownerJid"] == "977@s.whatsapp.net"
    assert raw["safety"]["rateLimitMax"] == 15

    loaded = load_config(path)
    assert loaded.provider.api_keys == ["k1", "k2"]
    assert loaded.persona.owner_jid == "977@s.whatsapp.net"


def test_invalid_config_falls_back_to_defaults(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(path).safety.rate_limit_max == 15

    path.write_text(json.dumps({"safety": {"rateLimitMax": "many"}}), encoding="utf-8")
    assert load_config(path).safety.rate_limit_max == 15


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WA_OPERATOR_PERSONA__BOT_NAME", "Jarvis")
    monkeypatch.setenv("WA_OPERATOR_SAFETY__RATE_LIMIT_MAX", "3")
    config = Config()
    assert config.persona.bot_name == "Jarvis"
    assert config.safety.rate_limit_max == 3


def test_paths_follow_data_dir(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("WA_OPERATOR_DATA_DIR", str(tmp_path))
    config = Config()
    assert config.snapshot_path == tmp_path / "state" / "store.json"
    assert config.metrics_path == tmp_path / "state" / "metrics" / "events.jsonl"


def test_key_conversion():
    assert camel_to_snake("rateLimitWindowMs") == "rate_limit_window_ms"
    assert snake_to_camel("rate_limit_window_ms") == "rateLimitWindowMs"
    assert convert_keys({"outerKey": [{"innerKey": 1}]}) == {"outer_key": [{"inner_key": 1}]}
