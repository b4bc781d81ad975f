import json

from chefchat import config as config_module
from chefchat.config import AppConfig, load_config, save_config


def test_defaults():
    config = AppConfig()
    assert config.chat.ai_persona_id == "ai-persona"
    assert config.chat.ai_mention == "@bro"
    assert config.llm.ai_models[0] == "gemini-1.5-flash"
    assert config.llm.custom_models["gemini"] == config.llm.ai_models


def test_api_keys_encrypted_at_rest(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "_config_dir", tmp_path)
    monkeypatch.setattr(config_module, "_config_file", tmp_path / "config.json")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    config = AppConfig()
    config.llm.gemini_api_key = "secret-key"
    save_config(config)

    on_disk = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert on_disk["llm"]["gemini_api_key"].startswith("ENC:")
    assert load_config().llm.gemini_api_key == "secret-key"


def test_plaintext_config_migrated(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "_config_dir", tmp_path)
    monkeypatch.setattr(config_module, "_config_file", tmp_path / "config.json")
    (tmp_path / "config.json").write_text(
        json.dumps({"llm": {"gemini_api_key": "plain"}}), encoding="utf-8"
    )

    assert load_config().llm.gemini_api_key == "plain"
    on_disk = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert on_disk["llm"]["gemini_api_key"].startswith("ENC:")


def test_env_fills_missing_key(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "_config_dir", tmp_path)
    monkeypatch.setattr(config_module, "_config_file", tmp_path / "config.json")
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    assert load_config().llm.gemini_api_key == "from-env"
