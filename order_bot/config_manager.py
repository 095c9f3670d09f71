"""
Loads and saves the bot settings (Slack, Google and LLM credentials).

Settings live in a local config.json written by the settings endpoint. Any
value set in the environment (or a .env file) takes precedence over the file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from constants.models import DEFAULT_EXTRACTION_MODEL
from constants.sheets import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

DEFAULT_CONFIG_PATH = "config.json"

# Environment variable -> BotConfig field
ENV_FIELDS = {
    "SLACK_SIGNING_SECRET": "slack_signing_secret",
    "SLACK_BOT_TOKEN": "slack_bot_token",
    "GOOGLE_SERVICE_ACCOUNT_KEY": "google_service_account_key",
    "OPENROUTER_API_KEY": "llm_api_key",
    "SELECTED_SHEET_ID": "selected_sheet_id",
    "LLM_MODEL": "llm_model",
    "ORDER_BOT_TIMEZONE": "timezone",
    "SLACK_BOT_USER_ID": "bot_user_id",
    "SLACK_BOT_ID": "bot_id",
}

REQUIRED_FIELDS = [
    "slack_signing_secret",
    "slack_bot_token",
    "google_service_account_key",
    "llm_api_key",
    "selected_sheet_id",
]


class BotConfig(BaseModel):
    """Everything the bot needs to talk to Slack, Google Sheets and the LLM"""

    slack_signing_secret: Optional[str] = None
    slack_bot_token: Optional[str] = None
    google_service_account_key: Optional[Union[str, Dict[str, Any]]] = None
    llm_api_key: Optional[str] = None
    selected_sheet_id: Optional[str] = None
    llm_model: str = DEFAULT_EXTRACTION_MODEL
    timezone: str = DEFAULT_TIMEZONE
    bot_user_id: Optional[str] = None
    bot_id: Optional[str] = None

    class Config:
        populate_by_name = True

    def missing_fields(self) -> list:
        missing = []
        for field in REQUIRED_FIELDS:
            value = getattr(self, field)
            if value is None or str(value).strip() == "":
                missing.append(field)
        return missing


def get_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    return Path(path or os.getenv("ORDER_BOT_CONFIG_PATH", DEFAULT_CONFIG_PATH))


def _read_file(path: Path) -> Dict[str, Any]:
    try:
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning(f"Config file {path} does not contain a JSON object, ignoring it")
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error reading config file {path}: {e}")
    return {}


def _read_env() -> Dict[str, Any]:
    values = {}
    for env_name, field in ENV_FIELDS.items():
        value = os.getenv(env_name)
        if value:
            values[field] = value
    return values


def get_config(path: Optional[Union[str, Path]] = None) -> BotConfig:
    """
    Load the settings. Returns an empty BotConfig if nothing is configured yet.
    """
    data = _read_file(get_config_path(path))
    data.update(_read_env())
    known = {k: v for k, v in data.items() if k in BotConfig.model_fields}
    return BotConfig(**known)


def save_config(updates: Dict[str, Any], path: Optional[Union[str, Path]] = None) -> bool:
    """
    Merge new settings into the config file.

    Blank values in updates do not overwrite what is already stored.

    Returns:
        bool: True if the file was written
    """
    config_path = get_config_path(path)
    current = _read_file(config_path)
    for key, value in updates.items():
        if key not in BotConfig.model_fields:
            logger.warning(f"Ignoring unknown setting: {key}")
            continue
        if value is None or (isinstance(value, str) and value.strip() == ""):
            continue
        current[key] = value

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(current, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error(f"Error saving config file {config_path}: {e}")
        return False

    logger.info(f"Settings saved to {config_path}")
    return True


def is_configured(config: BotConfig) -> bool:
    """True when every required credential is present."""
    return not config.missing_fields()
