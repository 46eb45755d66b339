"""Configuration snapshot models for the WeCom channel.

Mirrors the host configuration shape::

    channels:
      wecom:
        enabled: true
        token: ...
        encodingAESKey: ...
        webhookPath: /wecom
        accounts:
          ops: {token: ..., encodingAESKey: ..., webhookPath: /wecom-ops}
        defaultAccount: ops

Snapshots are frozen. Edits go through ``model_copy`` and always produce a
new snapshot, leaving the previous one usable for rollback or diffing.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WecomAccountConfig(BaseModel):
    """Settings for one account; every field is optional so it can overlay."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str | None = None
    enabled: bool | None = None
    token: str | None = None
    encoding_aes_key: str | None = Field(default=None, alias="encodingAESKey")
    receive_id: str | None = Field(default=None, alias="receiveId")
    webhook_path: str | None = Field(default=None, alias="webhookPath")
    allow_from: list[str | int] | None = Field(default=None, alias="allowFrom")
    group_allow_from: list[str | int] | None = Field(
        default=None, alias="groupAllowFrom"
    )
    require_mention: bool | None = Field(default=None, alias="requireMention")


class WecomChannelConfig(WecomAccountConfig):
    """Top-level channel settings plus the optional named-account map."""

    accounts: dict[str, WecomAccountConfig] | None = None
    default_account: str | None = Field(default=None, alias="defaultAccount")


class ChannelsConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    wecom: WecomChannelConfig | None = None


class PluginConfig(BaseModel):
    """Host configuration snapshot; only ``channels.wecom`` is interpreted."""

    model_config = ConfigDict(frozen=True, extra="allow")

    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)

    @property
    def wecom(self) -> WecomChannelConfig | None:
        return self.channels.wecom

    def with_wecom(self, channel: WecomChannelConfig) -> PluginConfig:
        """Return a new snapshot with ``channels.wecom`` replaced."""
        channels = self.channels.model_copy(update={"wecom": channel})
        return self.model_copy(update={"channels": channels})

    def to_dict(self) -> dict[str, Any]:
        """Dump in the host's camelCase shape, omitting unset values."""
        return self.model_dump(by_alias=True, exclude_none=True)


def coerce_config(cfg: PluginConfig | Mapping[str, Any] | None) -> PluginConfig:
    """Accept either a snapshot or a raw mapping from the host."""
    if isinstance(cfg, PluginConfig):
        return cfg
    return PluginConfig.model_validate(dict(cfg or {}))
