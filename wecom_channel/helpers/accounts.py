"""Account resolution and copy-on-write account edits.

An account is the top-level ``channels.wecom`` settings with the matching
``accounts[<id>]`` entry laid over it. ``DEFAULT_ACCOUNT_ID`` always exists,
even when no account map is configured.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from wecom_channel.helpers.channel_config import (
    PluginConfig,
    WecomAccountConfig,
    WecomChannelConfig,
    coerce_config,
)

DEFAULT_ACCOUNT_ID = "default"
DEFAULT_WEBHOOK_PATH = "/wecom"
DEFAULT_REQUIRE_MENTION = True

ConfigInput = PluginConfig | Mapping[str, Any] | None


class ResolvedAccount(BaseModel):
    """Materialized settings for one account."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    name: str | None = None
    enabled: bool
    configured: bool
    token: str = ""
    encoding_aes_key: str = ""
    receive_id: str = ""
    config: WecomAccountConfig


def _channel(cfg: PluginConfig) -> WecomChannelConfig:
    return cfg.channels.wecom or WecomChannelConfig()


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _merge(
    channel: WecomChannelConfig, override: WecomAccountConfig | None
) -> WecomAccountConfig:
    merged = channel.model_dump(
        exclude={"accounts", "default_account"}, exclude_none=True
    )
    if override is not None:
        merged.update(override.model_dump(exclude_none=True))
    return WecomAccountConfig.model_validate(merged)


def list_account_ids(cfg: ConfigInput) -> list[str]:
    """Default account first, then every named account, without duplicates."""
    accounts = _channel(coerce_config(cfg)).accounts or {}
    ids = [DEFAULT_ACCOUNT_ID]
    for account_id in sorted(accounts):
        if account_id not in ids:
            ids.append(account_id)
    return ids


def resolve_default_account_id(cfg: ConfigInput) -> str:
    snapshot = coerce_config(cfg)
    preferred = _clean(_channel(snapshot).default_account)
    if preferred and preferred in list_account_ids(snapshot):
        return preferred
    return DEFAULT_ACCOUNT_ID


def resolve_account(cfg: ConfigInput, account_id: str | None = None) -> ResolvedAccount:
    """Resolve *account_id* (default account when omitted) from *cfg*."""
    snapshot = coerce_config(cfg)
    account_id = _clean(account_id) or DEFAULT_ACCOUNT_ID
    channel = _channel(snapshot)
    override = (channel.accounts or {}).get(account_id)
    merged = _merge(channel, override)

    token = _clean(merged.token)
    aes_key = _clean(merged.encoding_aes_key)
    enabled = channel.enabled is not False and merged.enabled is not False
    return ResolvedAccount(
        account_id=account_id,
        name=_clean(merged.name) or None,
        enabled=enabled,
        configured=bool(token and aes_key),
        token=token,
        encoding_aes_key=aes_key,
        receive_id=_clean(merged.receive_id),
        config=merged,
    )


def set_account_enabled(
    cfg: ConfigInput, account_id: str | None, enabled: bool
) -> PluginConfig:
    """Return a new snapshot with the account's ``enabled`` flag set.

    Named accounts carry their own flag; anything else toggles the
    top-level channel flag.
    """
    snapshot = coerce_config(cfg)
    account_id = account_id or DEFAULT_ACCOUNT_ID
    channel = _channel(snapshot)
    accounts = channel.accounts or {}

    if account_id not in accounts:
        return snapshot.with_wecom(channel.model_copy(update={"enabled": enabled}))

    updated = dict(accounts)
    updated[account_id] = accounts[account_id].model_copy(update={"enabled": enabled})
    return snapshot.with_wecom(channel.model_copy(update={"accounts": updated}))


def delete_account(cfg: ConfigInput, account_id: str | None = None) -> PluginConfig:
    """Return a new snapshot without *account_id*.

    The default account cannot disappear: deleting it drops the account map
    and default pointer and disables the channel. Deleting the last named
    account removes the map entirely.
    """
    snapshot = coerce_config(cfg)
    account_id = account_id or DEFAULT_ACCOUNT_ID
    current = snapshot.channels.wecom
    if current is None:
        return snapshot.model_copy()

    if account_id == DEFAULT_ACCOUNT_ID:
        return snapshot.with_wecom(
            current.model_copy(
                update={"accounts": None, "default_account": None, "enabled": False}
            )
        )

    remaining = {
        key: value
        for key, value in (current.accounts or {}).items()
        if key != account_id
    }
    return snapshot.with_wecom(
        current.model_copy(update={"accounts": remaining or None})
    )


def format_allow_from(entries: Iterable[str | int] | None) -> list[str]:
    """Trim, lower-case and drop blank allow-list entries."""
    normalized = (str(entry).strip() for entry in entries or [])
    return [entry.lower() for entry in normalized if entry]


def resolve_allow_from(config: WecomAccountConfig) -> list[str]:
    return format_allow_from(config.allow_from)


def resolve_group_allow_from(config: WecomAccountConfig) -> list[str]:
    return format_allow_from(config.group_allow_from)


def resolve_require_mention(config: WecomAccountConfig) -> bool:
    if config.require_mention is None:
        return DEFAULT_REQUIRE_MENTION
    return config.require_mention


def is_allowed(allow_from: list[str], sender_id: str) -> bool:
    """Empty allow-lists admit everyone; ``*`` is a wildcard."""
    if not allow_from or "*" in allow_from:
        return True
    return sender_id.strip().lower() in allow_from


def normalize_webhook_path(path: str | None) -> str:
    cleaned = _clean(path).strip("/")
    return f"/{cleaned}" if cleaned else "/"


def effective_webhook_path(account: ResolvedAccount) -> str:
    return normalize_webhook_path(account.config.webhook_path or DEFAULT_WEBHOOK_PATH)


def describe_account(account: ResolvedAccount) -> dict[str, Any]:
    return {
        "account_id": account.account_id,
        "name": account.name,
        "enabled": account.enabled,
        "configured": account.configured,
        "webhook_path": effective_webhook_path(account),
    }
