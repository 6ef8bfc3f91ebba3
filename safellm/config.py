"""Handles the persistent configuration record."""

import json
import logging
import os

from keyring.errors import KeyringError

from safellm.globals import CONFIG_FILE, log_exception, retrieve_key, store_key

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. You can think before answering using <think> tags. "
    "Do not indent your responses with 4 spaces unless writing code blocks. "
    "You have access to a long-term memory. Use the read-memory tool to check for past "
    "information and the save-memory tool to store important details. When reading memory, "
    "treat the file as a chronological log. If you find conflicting information, always "
    "prioritize the most recent entry based on the timestamp."
)

# Keys written by older releases, mapped to their current attribute names
LEGACY_KEYS = {
    "baseUrl": "base_url",
    "modelId": "model_id",
}


class Config:
    """User-facing configuration variables"""

    def __init__(self):
        # Default values
        self.provider: str = "lm-studio"
        self.base_url: str = "http://localhost:1234/v1"
        self.model_id: str = "mistralai/ministral-3-14b-reasoning"
        self.auth: bool = False
        self.system_prompt: str = DEFAULT_SYSTEM_PROMPT
        self.tools_enabled: bool = True
        self.rich_code_theme: str = "monokai"
        # Key held for this process only, never written to disk
        self._session_key: str = ""

    def to_dict(self) -> dict:
        """Public attributes, as written to the config file."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    def save(self):
        """Saves any config changes to the config file."""
        os.makedirs(os.path.dirname(CONFIG_FILE), exist_ok=True)
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def load(self):
        """Loads the config file."""
        if not os.path.exists(CONFIG_FILE):
            self.save()
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Malformed config file: {CONFIG_FILE}")
        migrated = self._migrate(data)
        for key, val in data.items():
            if key.startswith("_"):
                continue
            setattr(self, key, val)
        if migrated:
            self.save()

    def _migrate(self, data: dict) -> bool:
        """Rewrites legacy keys in place. Returns True if anything changed."""
        changed = False
        if "lmStudioUrl" in data:
            if not data.get("base_url") and not data.get("baseUrl"):
                data["base_url"] = data["lmStudioUrl"]
                data["provider"] = "lm-studio"
            del data["lmStudioUrl"]
            changed = True
        for old, new in LEGACY_KEYS.items():
            if old in data:
                data.setdefault(new, data[old])
                del data[old]
                changed = True
        # Plain-text keys move into the OS keyring
        for old in ("apiKey", "api_key"):
            if old not in data:
                continue
            key = data.pop(old)
            changed = True
            if not key:
                continue
            data["auth"] = True
            try:
                store_key(key)
            except (KeyringError, ValueError, RuntimeError, OSError) as e:
                log_exception(e, "Error in Config._migrate() - keeping key in memory")
                self._session_key = key
        if changed:
            logging.info("Migrated legacy configuration keys.")
        return changed

    def set_session_key(self, key: str):
        """Holds a key for this process when the keyring is unavailable."""
        self._session_key = key

    @property
    def api_key(self) -> str | None:
        """Bearer token for the provider, or None when auth is disabled."""
        if not self.auth:
            return None
        return self._session_key or retrieve_key() or None


def ensure_config() -> Config:
    """Loads the config file, or runs the setup wizard if there is none."""
    if not os.path.exists(CONFIG_FILE):
        from safellm.setup_wizard import run_setup_wizard

        return run_setup_wizard()
    config = Config()
    try:
        config.load()
    except (OSError, ValueError) as e:
        log_exception(e, "Error in ensure_config() - falling back to defaults")
        return Config()
    return config
