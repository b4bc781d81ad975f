import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


_DEFAULT_AI_MODELS: list[str] = [
    "gemini-1.5-flash",  # fast, tried first
    "gemini-1.5-pro",
    "gemini-pro",
    "gemini-1.0-pro",  # legacy fallback
]


class LLMConfig(BaseModel):
    gemini_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    local_llm_base_url: str = ""  # e.g. http://localhost:11434/v1 (Ollama)
    local_llm_api_key: str = ""   # Optional, most local LLMs don't require one
    custom_models: dict[str, list[str]] = {"gemini": list(_DEFAULT_AI_MODELS)}
    ai_models: list[str] = list(_DEFAULT_AI_MODELS)  # tried in order
    ai_timeout_seconds: float = 30.0


_DEFAULT_SYSTEM_PROMPT = (
    "You are @bro, a friendly and helpful AI assistant inside a restaurant "
    "chat app. Keep responses concise, friendly, and helpful. "
    "Respond naturally and conversationally."
)


class ChatConfig(BaseModel):
    ai_persona_id: str = "ai-persona"
    ai_persona_name: str = "@bro"
    ai_mention: str = "@bro"
    ai_system_prompt: str = _DEFAULT_SYSTEM_PROMPT
    ai_context_messages: int = 10  # last N messages sent along with the prompt
    history_limit: int = 100
    max_history_limit: int = 500
    join_timeout_seconds: float = 30.0
    max_message_length: int = 4000


class AuthConfig(BaseModel):
    token_ttl_seconds: int = 7 * 24 * 3600


class AppConfig(BaseModel):
    llm: LLMConfig = LLMConfig()
    chat: ChatConfig = ChatConfig()
    auth: AuthConfig = AuthConfig()
    cors_origins: list[str] = ["http://localhost:3000"]
    language: str = "en"


_config_dir = Path(os.environ.get("CHEFCHAT_DATA_DIR", Path.home() / ".chefchat"))
_config_file = _config_dir / "config.json"

# ---------------------------------------------------------------------------
# Sensitive fields to encrypt at rest  (dot-path: "section.field")
# ---------------------------------------------------------------------------

SENSITIVE_FIELDS: list[str] = [
    "llm.gemini_api_key",
    "llm.anthropic_api_key",
    "llm.openai_api_key",
    "llm.local_llm_api_key",
]

# Environment variables that fill empty key fields
_ENV_KEYS: dict[str, str] = {
    "gemini_api_key": "GEMINI_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
}


def get_data_dir() -> Path:
    return _config_dir


def _encrypt_sensitive(data: dict) -> dict:
    """Encrypt sensitive fields in a config dict before writing to disk."""
    from .crypto import encrypt_value

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        if section in data and field in data[section]:
            data[section][field] = encrypt_value(data[section][field])
    return data


def _decrypt_sensitive(data: dict) -> dict:
    """Decrypt sensitive fields in a config dict after reading from disk."""
    from .crypto import decrypt_value

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        if section in data and field in data[section]:
            data[section][field] = decrypt_value(data[section][field])
    return data


def _needs_migration(data: dict) -> bool:
    """Return True if any sensitive field is non-empty plaintext (no ENC: prefix)."""
    from .crypto import _ENC_PREFIX

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        val = data.get(section, {}).get(field, "")
        if val and not val.startswith(_ENC_PREFIX):
            return True
    return False


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    for field, env_name in _ENV_KEYS.items():
        if not getattr(config.llm, field):
            value = os.environ.get(env_name, "")
            if value:
                setattr(config.llm, field, value)
    return config


def _ensure_config_dir() -> None:
    _config_dir.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    _ensure_config_dir()
    if _config_file.exists():
        data = json.loads(_config_file.read_text(encoding="utf-8"))

        migrate = _needs_migration(data)
        data = _decrypt_sensitive(data)
        config = AppConfig(**data)

        # Re-save with encryption on first load of a plaintext config
        if migrate:
            logger.info("Migrating config to encrypted storage")
            save_config(config)

        return _apply_env_overrides(config)
    return _apply_env_overrides(AppConfig())


def save_config(config: AppConfig) -> None:
    from .crypto import set_strict_permissions

    _ensure_config_dir()
    data = json.loads(config.model_dump_json(indent=2))
    data = _encrypt_sensitive(data)
    _config_file.write_text(
        json.dumps(data, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    set_strict_permissions(_config_file)


_current_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _current_config
    if _current_config is None:
        _current_config = load_config()
    return _current_config

