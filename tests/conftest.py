"""Shared pytest fixtures for the test suite.

Every process-wide registry is reset around each test so handles, webhook
targets and runtime bindings never leak between tests.
"""

import pytest

TEST_TOKEN = "token-1"
TEST_AES_KEY = "abcdefghijklmnopqrstuvwxyz0123456789ABCDEFG"


@pytest.fixture(autouse=True)
def _reset_channel_state():
    from wecom_channel.helpers.lifecycle import AccountLifecycleManager
    from wecom_channel.helpers.reply_registry import ReplyRegistry
    from wecom_channel.helpers.runtime import reset_wecom_runtime
    from wecom_channel.helpers.webhook_event_log import WebhookEventLog
    from wecom_channel.helpers.webhook_targets import WebhookTargetRegistry

    def _reset():
        AccountLifecycleManager.reset_instance()
        ReplyRegistry.reset_instance()
        WebhookTargetRegistry.reset_instance()
        WebhookEventLog.reset_instance()
        reset_wecom_runtime()

    _reset()
    yield
    _reset()


@pytest.fixture
def wecom_cfg():
    """Minimal configured single-account snapshot in the host's raw shape."""
    return {
        "channels": {
            "wecom": {
                "enabled": True,
                "token": TEST_TOKEN,
                "encodingAESKey": TEST_AES_KEY,
            },
        },
    }


@pytest.fixture
def multi_account_cfg():
    return {
        "channels": {
            "wecom": {
                "enabled": True,
                "token": TEST_TOKEN,
                "encodingAESKey": TEST_AES_KEY,
                "allowFrom": [" Alice ", "", "BOB"],
                "accounts": {
                    "ops": {
                        "name": "Ops bot",
                        "token": "ops-token",
                        "webhookPath": "/wecom-ops",
                        "requireMention": False,
                    },
                    "sales": {"enabled": False},
                },
                "defaultAccount": "ops",
            },
        },
    }
