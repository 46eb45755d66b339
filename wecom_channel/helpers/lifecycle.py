"""Per-account gateway lifecycle: webhook registration and status.

``start_account`` resolves the account, registers its webhook target and
keeps the returned unregister callable; ``stop_account`` invokes it. At
most one registration is active per account, so restarting a running
account replaces its registration instead of adding a second one.

Status moves ``stopped -> starting -> running`` and back to ``stopped`` on
stop, or on start when the account has no credentials. Every patch is
merged into an owned ``AccountLifecycleState`` and forwarded to the
host's ``set_status`` callback.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, ClassVar

from wecom_channel.helpers.accounts import (
    DEFAULT_ACCOUNT_ID,
    effective_webhook_path,
    list_account_ids,
    resolve_account,
)
from wecom_channel.helpers.channel_config import PluginConfig, coerce_config
from wecom_channel.helpers.channel_models import (
    AccountLifecycleState,
    LifecyclePhase,
    utc_now,
)
from wecom_channel.helpers.runtime import BoundRuntime, probe_runtime, set_wecom_runtime
from wecom_channel.helpers.webhook_targets import WebhookTarget, register_webhook_target

logger = logging.getLogger(__name__)

RegisterTarget = Callable[[WebhookTarget], Callable[[], None]]
StatusCallback = Callable[[dict[str, Any]], None]


@dataclass
class GatewayContext:
    """What the host passes to ``start_account`` / ``stop_account``."""

    cfg: PluginConfig | Mapping[str, Any] | None = None
    account_id: str = DEFAULT_ACCOUNT_ID
    runtime: Any = None
    set_status: StatusCallback | None = None
    log: logging.Logger | logging.LoggerAdapter | None = None

    @property
    def logger(self) -> logging.Logger | logging.LoggerAdapter:
        return self.log or logger


class AccountLifecycleManager:
    """Owns the account -> unregister-handle map and status snapshots."""

    _instance: ClassVar[AccountLifecycleManager | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, register_target: RegisterTarget | None = None) -> None:
        self._register_target = register_target or register_webhook_target
        self._unregister_hooks: dict[str, Callable[[], None]] = {}
        self._states: dict[str, AccountLifecycleState] = {}
        self._store_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> AccountLifecycleManager:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            instance, cls._instance = cls._instance, None
        if instance is not None:
            instance.stop_all()

    def _apply(self, account_id: str, patch: dict[str, Any]) -> AccountLifecycleState:
        known = {
            key: value
            for key, value in patch.items()
            if key in AccountLifecycleState.model_fields and key != "account_id"
        }
        with self._store_lock:
            current = self._states.get(account_id) or AccountLifecycleState(
                account_id=account_id
            )
            updated = current.model_copy(update=known)
            self._states[account_id] = updated
        return updated

    def _emit(self, ctx: GatewayContext, patch: dict[str, Any]) -> AccountLifecycleState:
        state = self._apply(ctx.account_id, patch)
        if ctx.set_status is not None:
            ctx.set_status({"account_id": ctx.account_id, **patch})
        return state

    async def start_account(self, ctx: GatewayContext) -> AccountLifecycleState:
        self._emit(ctx, {"phase": LifecyclePhase.STARTING})

        if ctx.runtime is not None:
            binding = probe_runtime(ctx.runtime)
            if isinstance(binding, BoundRuntime):
                set_wecom_runtime(binding)
            else:
                ctx.logger.info("[wecom] host runtime not bound: %s", binding.reason)

        cfg = coerce_config(ctx.cfg)
        account = resolve_account(cfg, ctx.account_id)
        if not account.configured:
            with self._store_lock:
                stale = self._unregister_hooks.pop(ctx.account_id, None)
            if stale is not None:
                stale()
            ctx.logger.info(
                "[wecom] account %s not configured; webhook not registered",
                ctx.account_id,
            )
            return self._emit(
                ctx,
                {"phase": LifecyclePhase.STOPPED, "running": False, "configured": False},
            )

        path = effective_webhook_path(account)
        unregister = self._register_target(
            WebhookTarget(
                account=account,
                config=cfg,
                path=path,
                log=ctx.logger.info,
                error=ctx.logger.error,
                status_sink=lambda patch: self._emit(ctx, patch),
            )
        )

        with self._store_lock:
            existing = self._unregister_hooks.pop(ctx.account_id, None)
        if existing is not None:
            existing()
        with self._store_lock:
            self._unregister_hooks[ctx.account_id] = unregister

        ctx.logger.info(
            "[wecom] webhook registered at %s for account %s", path, ctx.account_id
        )
        return self._emit(
            ctx,
            {
                "phase": LifecyclePhase.RUNNING,
                "running": True,
                "configured": True,
                "webhook_path": path,
                "last_start_at": utc_now(),
            },
        )

    async def stop_account(self, ctx: GatewayContext) -> AccountLifecycleState:
        with self._store_lock:
            unregister = self._unregister_hooks.pop(ctx.account_id, None)
        if unregister is not None:
            unregister()
        return self._emit(
            ctx,
            {"phase": LifecyclePhase.STOPPED, "running": False, "last_stop_at": utc_now()},
        )

    async def start_all(
        self,
        cfg: PluginConfig | Mapping[str, Any] | None,
        runtime: Any = None,
        set_status: StatusCallback | None = None,
    ) -> list[AccountLifecycleState]:
        """Start every enabled account in *cfg*."""
        snapshot = coerce_config(cfg)
        states = []
        for account_id in list_account_ids(snapshot):
            if not resolve_account(snapshot, account_id).enabled:
                logger.info("Skipping disabled WeCom account %s", account_id)
                continue
            ctx = GatewayContext(
                cfg=snapshot,
                account_id=account_id,
                runtime=runtime,
                set_status=set_status,
            )
            states.append(await self.start_account(ctx))
        return states

    def stop_all(self) -> None:
        """Unregister every active webhook target."""
        with self._store_lock:
            hooks = list(self._unregister_hooks.items())
            self._unregister_hooks.clear()
        for account_id, unregister in hooks:
            unregister()
            self._apply(
                account_id,
                {"phase": LifecyclePhase.STOPPED, "running": False, "last_stop_at": utc_now()},
            )

    def is_registered(self, account_id: str) -> bool:
        with self._store_lock:
            return account_id in self._unregister_hooks

    def status(self, account_id: str) -> AccountLifecycleState | None:
        with self._store_lock:
            return self._states.get(account_id)

    def list_status(self) -> list[AccountLifecycleState]:
        with self._store_lock:
            return [self._states[key] for key in sorted(self._states)]
