"""Loading the channel configuration snapshot.

The config file is YAML (JSON is accepted too, being a YAML subset) in the
host shape ``{channels: {wecom: {...}}}``. A few environment variables
override the top-level channel settings so secrets can stay out of the
file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from wecom_channel.helpers.channel_config import PluginConfig
from wecom_channel.helpers.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "WECOM_CONFIG_PATH"

# env var -> top-level channels.wecom key
ENV_OVERRIDES = {
    "WECOM_TOKEN": "token",
    "WECOM_ENCODING_AES_KEY": "encodingAESKey",
    "WECOM_WEBHOOK_PATH": "webhookPath",
}


def apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *raw* with ``ENV_OVERRIDES`` applied."""
    overrides = {
        key: os.environ[env].strip()
        for env, key in ENV_OVERRIDES.items()
        if os.environ.get(env, "").strip()
    }
    if not overrides:
        return raw
    channels = dict(raw.get("channels") or {})
    channels["wecom"] = {**(channels.get("wecom") or {}), **overrides}
    return {**raw, "channels": channels}


def parse_plugin_config(text: str) -> PluginConfig:
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid config file: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("Config file must contain a mapping at the top level")
    try:
        return PluginConfig.model_validate(apply_env_overrides(raw))
    except ValidationError as exc:
        raise ConfigError(f"Invalid WeCom channel config: {exc}") from exc


def load_plugin_config(path: str | Path | None = None) -> PluginConfig:
    """Load the snapshot from *path* or ``$WECOM_CONFIG_PATH``.

    With neither set, only the environment overrides are used.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    path = path or os.environ.get(CONFIG_PATH_ENV)
    if not path:
        logger.info("No WeCom config file given; using environment only")
        return parse_plugin_config("")

    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
    return parse_plugin_config(text)
