"""Binding to the host bot runtime.

The host hands the gateway an opaque runtime object. Only a runtime that
exposes ``channel.routing.resolve_agent_route`` and
``channel.reply.dispatch_reply_from_config`` can receive inbound messages;
anything else leaves the channel unbound (webhooks still register, but
inbound messages are not dispatched).
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

_MISSING = object()


@dataclass(frozen=True)
class BoundRuntime:
    resolve_agent_route: Callable[..., Any]
    dispatch_reply_from_config: Callable[..., Any]
    host: Any = None


@dataclass(frozen=True)
class UnboundRuntime:
    reason: str


RuntimeBinding = BoundRuntime | UnboundRuntime


def _lookup(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, _MISSING)
    return getattr(obj, name, _MISSING)


def _lookup_path(obj: Any, *names: str) -> Any:
    for name in names:
        if obj is _MISSING or obj is None:
            return _MISSING
        obj = _lookup(obj, name)
    return obj


def probe_runtime(candidate: Any) -> RuntimeBinding:
    """Classify *candidate* as a bindable host runtime or not."""
    if candidate is None:
        return UnboundRuntime("no host runtime supplied")
    route = _lookup_path(candidate, "channel", "routing", "resolve_agent_route")
    dispatch = _lookup_path(candidate, "channel", "reply", "dispatch_reply_from_config")
    if not callable(route):
        return UnboundRuntime("runtime lacks channel.routing.resolve_agent_route")
    if not callable(dispatch):
        return UnboundRuntime("runtime lacks channel.reply.dispatch_reply_from_config")
    return BoundRuntime(
        resolve_agent_route=route,
        dispatch_reply_from_config=dispatch,
        host=candidate,
    )


_UNBOUND = UnboundRuntime("no host runtime bound")
_current: RuntimeBinding = _UNBOUND
_current_lock = threading.Lock()


def set_wecom_runtime(binding: BoundRuntime) -> None:
    global _current  # noqa: PLW0603
    with _current_lock:
        _current = binding


def get_wecom_runtime() -> RuntimeBinding:
    with _current_lock:
        return _current


def reset_wecom_runtime() -> None:
    global _current  # noqa: PLW0603
    with _current_lock:
        _current = _UNBOUND
