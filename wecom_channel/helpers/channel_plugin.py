"""WeCom channel plugin object handed to the host runtime.

Groups the channel's operations into the sub-contracts the host expects:
``messaging``, ``config``, ``groups``, ``directory``, ``outbound`` and
``gateway``.
"""

from __future__ import annotations

from typing import Any

import httpx

from wecom_channel.helpers import accounts, outbound, targets
from wecom_channel.helpers.accounts import ConfigInput, ResolvedAccount
from wecom_channel.helpers.channel_config import PluginConfig
from wecom_channel.helpers.channel_models import (
    CHANNEL_ID,
    AccountLifecycleState,
    ResolvedTarget,
    SendResult,
)
from wecom_channel.helpers.lifecycle import AccountLifecycleManager, GatewayContext

META = {
    "id": CHANNEL_ID,
    "label": "WeCom",
    "selection_label": "WeCom (企业微信)",
    "docs_path": "/channels/wecom",
    "docs_label": "wecom",
    "blurb": "企业微信智能机器人回调",
    "aliases": ["wechatwork", "wework", "qywx", "企微", "企业微信"],
    "order": 85,
}

CAPABILITIES = {
    "chat_types": ("direct", "group"),
    "media": False,
    "reactions": False,
    "threads": False,
    "edit": False,
    "reply": True,
    "polls": False,
}


class MessagingAdapter:
    hint = targets.TARGET_HINT

    def normalize_target(self, raw: str) -> str | None:
        return targets.normalize_target(raw)

    def looks_like_id(self, raw: str, normalized: str | None = None) -> bool:
        return targets.looks_like_id(raw, normalized)

    def format_target_display(self, target: str, display: str | None = None) -> str:
        return targets.format_target_display(target, display)


class ConfigAdapter:
    def list_account_ids(self, cfg: ConfigInput) -> list[str]:
        return accounts.list_account_ids(cfg)

    def resolve_account(
        self, cfg: ConfigInput, account_id: str | None = None
    ) -> ResolvedAccount:
        return accounts.resolve_account(cfg, account_id)

    def default_account_id(self, cfg: ConfigInput) -> str:
        return accounts.resolve_default_account_id(cfg)

    def set_account_enabled(
        self, cfg: ConfigInput, account_id: str | None, enabled: bool
    ) -> PluginConfig:
        return accounts.set_account_enabled(cfg, account_id, enabled)

    def delete_account(self, cfg: ConfigInput, account_id: str | None = None) -> PluginConfig:
        return accounts.delete_account(cfg, account_id)

    def is_configured(self, account: ResolvedAccount) -> bool:
        return account.configured

    def describe_account(self, account: ResolvedAccount) -> dict[str, Any]:
        return accounts.describe_account(account)

    def resolve_allow_from(
        self, cfg: ConfigInput, account_id: str | None = None
    ) -> list[str]:
        return accounts.resolve_allow_from(accounts.resolve_account(cfg, account_id).config)

    def format_allow_from(self, allow_from: list[str | int]) -> list[str]:
        return accounts.format_allow_from(allow_from)


class GroupsAdapter:
    def resolve_require_mention(
        self,
        cfg: ConfigInput = None,
        account_id: str | None = None,
        account: ResolvedAccount | None = None,
    ) -> bool:
        account = account or accounts.resolve_account(cfg, account_id)
        return accounts.resolve_require_mention(account.config)


class DirectoryAdapter:
    def can_resolve(self, target: str) -> bool:
        return targets.can_resolve(target)

    def resolve_target(self, cfg: ConfigInput, target: str) -> ResolvedTarget | None:
        parsed = targets.parse_target(target)
        if parsed is None:
            return None
        return ResolvedTarget(to=parsed.id, account_id=parsed.account_id)

    def resolve_targets(
        self, cfg: ConfigInput, target_list: list[str]
    ) -> list[ResolvedTarget]:
        resolved = (self.resolve_target(cfg, target) for target in target_list)
        return [r for r in resolved if r is not None]

    def get_target_formats(self) -> list[str]:
        return list(targets.TARGET_FORMATS)


class OutboundAdapter:
    """Replies only; there is no standalone send outside a callback window."""

    delivery_mode = "direct"

    async def send_text(
        self,
        cfg: ConfigInput,
        to: str,
        text: str,
        account_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> SendResult:
        return await outbound.send_text(cfg, to, text, account_id, client=client)

    async def send_media(
        self,
        cfg: ConfigInput,
        to: str,
        media_url: str,
        mime_type: str | None = None,
        account_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> SendResult:
        return await outbound.send_media(
            cfg, to, media_url, mime_type, account_id, client=client
        )


class GatewayAdapter:
    async def start_account(self, ctx: GatewayContext) -> AccountLifecycleState:
        return await AccountLifecycleManager.get_instance().start_account(ctx)

    async def stop_account(self, ctx: GatewayContext) -> AccountLifecycleState:
        return await AccountLifecycleManager.get_instance().stop_account(ctx)


class WecomPlugin:
    id = CHANNEL_ID
    meta = META
    capabilities = CAPABILITIES
    reload_config_prefixes = [f"channels.{CHANNEL_ID}"]

    def __init__(self) -> None:
        self.messaging = MessagingAdapter()
        self.config = ConfigAdapter()
        self.groups = GroupsAdapter()
        self.directory = DirectoryAdapter()
        self.outbound = OutboundAdapter()
        self.gateway = GatewayAdapter()


wecom_plugin = WecomPlugin()
