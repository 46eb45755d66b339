"""In-memory registry of reply handles captured from inbound callbacks.

A WeCom bot can only push a message through the ``response_url`` of a
recent callback. The webhook receiver registers that URL here keyed by
``(account_id, kind, id)``; the outbound sender consumes it. Handles are
single-use and the most recent registration for a key wins.

Entries do not expire on their own; they live until consumed, replaced or
cleared.
"""

from __future__ import annotations

import logging
import threading
from typing import ClassVar

from wecom_channel.helpers.channel_models import ReplyHandle
from wecom_channel.helpers.targets import parse_target, sanitize_log_value

logger = logging.getLogger(__name__)

ReplyKey = tuple[str, str, str]


def reply_key(account_id: str, to: str) -> ReplyKey | None:
    """Registry key for *to* under *account_id*, or None if *to* is invalid."""
    target = parse_target(to)
    if target is None:
        return None
    return (account_id, str(target.kind), target.id)


class ReplyRegistry:
    """Thread-safe single-use store of reply handles."""

    _instance: ClassVar[ReplyRegistry | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        self._store: dict[ReplyKey, ReplyHandle] = {}
        self._store_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> ReplyRegistry:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None

    def register(self, account_id: str, to: str, reply_handle: ReplyHandle) -> bool:
        """Store *reply_handle* for *to*, replacing any earlier handle."""
        key = reply_key(account_id, to)
        if key is None:
            logger.warning(
                "Ignoring reply handle for unparsable target %s",
                sanitize_log_value(to),
            )
            return False
        with self._store_lock:
            self._store[key] = reply_handle
        return True

    def consume(self, account_id: str, to: str) -> ReplyHandle | None:
        """Remove and return the handle for *to*; a second call returns None."""
        key = reply_key(account_id, to)
        if key is None:
            return None
        with self._store_lock:
            return self._store.pop(key, None)

    def peek(self, account_id: str, to: str) -> ReplyHandle | None:
        key = reply_key(account_id, to)
        if key is None:
            return None
        with self._store_lock:
            return self._store.get(key)

    def clear(self) -> None:
        with self._store_lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._store_lock:
            return len(self._store)


def register_response_url(account_id: str, to: str, response_url: str) -> bool:
    """Register *response_url* as the reply handle for *to*."""
    return ReplyRegistry.get_instance().register(
        account_id, to, ReplyHandle(response_url=response_url)
    )


def clear_outbound_reply_state() -> None:
    ReplyRegistry.get_instance().clear()
