# tests/test_channel_plugin.py
"""Tests for the plugin object the host runtime loads."""

from unittest.mock import MagicMock

import pytest


class TestPluginMetadata:
    def test_identity(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        assert wecom_plugin.id == "wecom"
        assert wecom_plugin.meta["label"] == "WeCom"
        assert "wechatwork" in wecom_plugin.meta["aliases"]
        assert wecom_plugin.reload_config_prefixes == ["channels.wecom"]

    def test_capabilities(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        caps = wecom_plugin.capabilities
        assert caps["chat_types"] == ("direct", "group")
        assert caps["reply"] is True
        assert caps["media"] is False
        assert wecom_plugin.outbound.delivery_mode == "direct"


class TestDirectory:
    @pytest.mark.parametrize(
        "raw, expected_to",
        [
            ("user:zhangchongwen", "zhangchongwen"),
            ("group:chat-001", "chat-001"),
            ("zhangchongwen", "zhangchongwen"),
            ("wecom:user:ZhangChongWen", "ZhangChongWen"),
        ],
    )
    def test_resolve_target(self, raw, expected_to):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        resolved = wecom_plugin.directory.resolve_target({}, raw)

        assert resolved.channel == "wecom"
        assert resolved.to == expected_to
        assert resolved.account_id is None

    def test_display_name_not_resolved(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        assert wecom_plugin.directory.resolve_target({}, "ZhangChongWen") is None
        assert wecom_plugin.directory.can_resolve("ZhangChongWen") is False

    def test_account_qualifier_carried(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        resolved = wecom_plugin.directory.resolve_target({}, "user:alice@ops")
        assert resolved.to == "alice"
        assert resolved.account_id == "ops"

    def test_resolve_targets_drops_invalid(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        resolved = wecom_plugin.directory.resolve_targets(
            {}, ["alice", "Not An Id", "group:room-1"]
        )
        assert [r.to for r in resolved] == ["alice", "room-1"]

    def test_target_formats(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        formats = wecom_plugin.directory.get_target_formats()
        assert "user:<userId>" in formats
        assert "group:<chatId>" in formats


class TestMessaging:
    def test_normalize_and_hint(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        messaging = wecom_plugin.messaging
        assert messaging.normalize_target(" wecom:user:alice ") == "user:alice"
        assert messaging.normalize_target("Alice Smith") is None
        assert "user:<userid>" in messaging.hint

    def test_looks_like_id(self):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        assert wecom_plugin.messaging.looks_like_id("alice") is True
        assert wecom_plugin.messaging.looks_like_id("Alice Smith") is False


class TestConfigAdapter:
    def test_accounts(self, multi_account_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        config = wecom_plugin.config
        assert config.list_account_ids(multi_account_cfg) == ["default", "ops", "sales"]
        assert config.default_account_id(multi_account_cfg) == "ops"

        ops = config.resolve_account(multi_account_cfg, "ops")
        assert config.is_configured(ops) is True
        assert config.describe_account(ops)["webhook_path"] == "/wecom-ops"

    def test_allow_from(self, multi_account_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        config = wecom_plugin.config
        assert config.resolve_allow_from(multi_account_cfg) == ["alice", "bob"]
        assert config.format_allow_from([" X ", 42, ""]) == ["x", "42"]

    def test_enable_and_delete_return_new_snapshots(self, wecom_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        config = wecom_plugin.config
        disabled = config.set_account_enabled(wecom_cfg, None, False)
        assert config.resolve_account(disabled).enabled is False
        assert wecom_cfg["channels"]["wecom"]["enabled"] is True

        deleted = config.delete_account(wecom_cfg)
        assert deleted.wecom.enabled is False

    def test_require_mention(self, multi_account_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        groups = wecom_plugin.groups
        assert groups.resolve_require_mention(multi_account_cfg) is True
        assert groups.resolve_require_mention(multi_account_cfg, "ops") is False

        ops = wecom_plugin.config.resolve_account(multi_account_cfg, "ops")
        assert groups.resolve_require_mention(account=ops) is False


class TestOutboundAdapter:
    @pytest.mark.asyncio
    async def test_send_outside_callback_window(self, wecom_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        result = await wecom_plugin.outbound.send_text(wecom_cfg, "user:alice", "hi")

        assert result.ok is False
        assert result.channel == "wecom"
        assert "No reply channel" in result.error

    @pytest.mark.asyncio
    async def test_send_media_invalid_target(self, wecom_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin

        result = await wecom_plugin.outbound.send_media(
            wecom_cfg, "Not An Id", "https://files.local/a.pdf"
        )
        assert result.ok is False
        assert "Invalid WeCom target" in result.error


class TestGatewayAdapter:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, wecom_cfg):
        from wecom_channel.helpers.channel_plugin import wecom_plugin
        from wecom_channel.helpers.lifecycle import GatewayContext
        from wecom_channel.helpers.webhook_targets import WebhookTargetRegistry

        ctx = GatewayContext(cfg=wecom_cfg, set_status=MagicMock())

        started = await wecom_plugin.gateway.start_account(ctx)
        assert started.running is True
        assert WebhookTargetRegistry.get_instance().paths() == ["/wecom"]

        stopped = await wecom_plugin.gateway.stop_account(ctx)
        assert stopped.running is False
        assert WebhookTargetRegistry.get_instance().paths() == []
