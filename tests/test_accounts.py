# tests/test_accounts.py
"""Tests for account resolution and copy-on-write config edits."""

import copy


class TestResolveAccount:
    def test_default_account_when_omitted(self, wecom_cfg):
        from wecom_channel.helpers.accounts import DEFAULT_ACCOUNT_ID, resolve_account

        account = resolve_account(wecom_cfg)
        assert account.account_id == DEFAULT_ACCOUNT_ID
        assert account.enabled is True
        assert account.configured is True
        assert account.token == "token-1"

    def test_missing_secret_is_not_configured(self):
        from wecom_channel.helpers.accounts import resolve_account

        account = resolve_account(
            {"channels": {"wecom": {"token": "t", "encodingAESKey": "   "}}}
        )
        assert account.configured is False

    def test_empty_config(self):
        from wecom_channel.helpers.accounts import resolve_account

        account = resolve_account(None)
        assert account.configured is False
        assert account.enabled is True

    def test_named_account_overrides_top_level(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import resolve_account

        account = resolve_account(multi_account_cfg, "ops")
        assert account.account_id == "ops"
        assert account.name == "Ops bot"
        assert account.token == "ops-token"
        # inherited from the top level
        assert account.encoding_aes_key == "abcdefghijklmnopqrstuvwxyz0123456789ABCDEFG"
        assert account.config.webhook_path == "/wecom-ops"

    def test_disabled_named_account(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import resolve_account

        assert resolve_account(multi_account_cfg, "sales").enabled is False

    def test_disabled_channel_disables_accounts(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import resolve_account

        cfg = copy.deepcopy(multi_account_cfg)
        cfg["channels"]["wecom"]["enabled"] = False
        assert resolve_account(cfg, "ops").enabled is False

    def test_accepts_snapshot(self, wecom_cfg):
        from wecom_channel.helpers.accounts import resolve_account
        from wecom_channel.helpers.channel_config import PluginConfig

        snapshot = PluginConfig.model_validate(wecom_cfg)
        assert resolve_account(snapshot).configured is True


class TestListAccountIds:
    def test_default_only(self, wecom_cfg):
        from wecom_channel.helpers.accounts import list_account_ids

        assert list_account_ids(wecom_cfg) == ["default"]

    def test_named_accounts(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import list_account_ids

        assert list_account_ids(multi_account_cfg) == ["default", "ops", "sales"]

    def test_default_listed_once(self):
        from wecom_channel.helpers.accounts import list_account_ids

        cfg = {"channels": {"wecom": {"accounts": {"default": {}, "ops": {}}}}}
        ids = list_account_ids(cfg)
        assert ids.count("default") == 1
        assert set(ids) == {"default", "ops"}

    def test_default_account_pointer(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import resolve_default_account_id

        assert resolve_default_account_id(multi_account_cfg) == "ops"
        cfg = copy.deepcopy(multi_account_cfg)
        cfg["channels"]["wecom"]["defaultAccount"] = "missing"
        assert resolve_default_account_id(cfg) == "default"


class TestSetAccountEnabled:
    def test_top_level_flag(self, wecom_cfg):
        from wecom_channel.helpers.accounts import resolve_account, set_account_enabled

        before = copy.deepcopy(wecom_cfg)
        updated = set_account_enabled(wecom_cfg, None, False)

        assert updated is not wecom_cfg
        assert wecom_cfg == before
        assert updated.channels.wecom.enabled is False
        assert resolve_account(updated).enabled is False

    def test_named_account_flag(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import set_account_enabled
        from wecom_channel.helpers.channel_config import PluginConfig

        snapshot = PluginConfig.model_validate(multi_account_cfg)
        original_accounts = snapshot.channels.wecom.accounts
        updated = set_account_enabled(snapshot, "sales", True)

        assert updated is not snapshot
        assert updated.channels.wecom.accounts["sales"].enabled is True
        assert snapshot.channels.wecom.accounts is original_accounts
        assert snapshot.channels.wecom.accounts["sales"].enabled is False
        assert updated.channels.wecom.enabled is True

    def test_creates_channel_when_missing(self):
        from wecom_channel.helpers.accounts import set_account_enabled

        updated = set_account_enabled({}, "default", True)
        assert updated.channels.wecom.enabled is True


class TestDeleteAccount:
    def test_delete_named_account(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import delete_account
        from wecom_channel.helpers.channel_config import PluginConfig

        snapshot = PluginConfig.model_validate(multi_account_cfg)
        updated = delete_account(snapshot, "sales")

        assert updated is not snapshot
        assert set(updated.channels.wecom.accounts) == {"ops"}
        assert set(snapshot.channels.wecom.accounts) == {"ops", "sales"}

    def test_delete_last_named_account_removes_map(self):
        from wecom_channel.helpers.accounts import delete_account

        cfg = {"channels": {"wecom": {"accounts": {"ops": {"token": "t"}}}}}
        updated = delete_account(cfg, "ops")
        assert updated.channels.wecom.accounts is None
        assert "accounts" not in updated.to_dict()["channels"]["wecom"]
        assert cfg["channels"]["wecom"]["accounts"] == {"ops": {"token": "t"}}

    def test_delete_default_disables_but_keeps_slot(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import (
            delete_account,
            list_account_ids,
            resolve_account,
        )

        before = copy.deepcopy(multi_account_cfg)
        updated = delete_account(multi_account_cfg)

        assert multi_account_cfg == before
        assert updated.channels.wecom is not None
        assert updated.channels.wecom.enabled is False
        assert updated.channels.wecom.accounts is None
        assert updated.channels.wecom.default_account is None
        assert list_account_ids(updated) == ["default"]
        assert resolve_account(updated).enabled is False

    def test_delete_without_channel(self):
        from wecom_channel.helpers.accounts import delete_account
        from wecom_channel.helpers.channel_config import PluginConfig

        snapshot = PluginConfig()
        updated = delete_account(snapshot, "ops")
        assert updated is not snapshot
        assert updated.channels.wecom is None


class TestPolicies:
    def test_allow_from_normalized(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import resolve_account, resolve_allow_from

        account = resolve_account(multi_account_cfg)
        assert resolve_allow_from(account.config) == ["alice", "bob"]

    def test_allow_from_default_empty(self, wecom_cfg):
        from wecom_channel.helpers.accounts import resolve_account, resolve_allow_from

        assert resolve_allow_from(resolve_account(wecom_cfg).config) == []

    def test_format_allow_from_numbers(self):
        from wecom_channel.helpers.accounts import format_allow_from

        assert format_allow_from([12345, " X "]) == ["12345", "x"]

    def test_is_allowed(self):
        from wecom_channel.helpers.accounts import is_allowed

        assert is_allowed([], "anyone") is True
        assert is_allowed(["*"], "anyone") is True
        assert is_allowed(["alice"], "Alice") is True
        assert is_allowed(["alice"], "bob") is False

    def test_require_mention(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import resolve_account, resolve_require_mention

        assert resolve_require_mention(resolve_account(multi_account_cfg).config) is True
        assert (
            resolve_require_mention(resolve_account(multi_account_cfg, "ops").config)
            is False
        )

    def test_describe_account(self, multi_account_cfg):
        from wecom_channel.helpers.accounts import describe_account, resolve_account

        described = describe_account(resolve_account(multi_account_cfg, "ops"))
        assert described == {
            "account_id": "ops",
            "name": "Ops bot",
            "enabled": True,
            "configured": True,
            "webhook_path": "/wecom-ops",
        }

    def test_webhook_path_normalized(self):
        from wecom_channel.helpers.accounts import normalize_webhook_path

        assert normalize_webhook_path("wecom/") == "/wecom"
        assert normalize_webhook_path(None) == "/"
