"""Record of what happened to each inbound WeCom callback.

Every callback that reaches a registered path ends in one
``CallbackOutcome``. The last entries are kept for the status endpoint;
per-account outcome counters cover the whole process lifetime, so a burst
of ``bad_signature`` rejections stays visible after it scrolls out of the
recent window. Message text is never stored.
"""

from __future__ import annotations

import threading
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import ClassVar

from wecom_channel.helpers.channel_models import CallbackOutcome, InboundMessage, utc_now

# Signature failures cannot be attributed to an account.
UNATTRIBUTED = ""


@dataclass(frozen=True)
class CallbackEvent:
    account_id: str
    path: str
    outcome: CallbackOutcome
    msg_type: str = ""
    msg_id: str = ""
    chat_type: str = ""
    reply_to: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def for_message(
        cls, path: str, outcome: CallbackOutcome, message: InboundMessage
    ) -> CallbackEvent:
        return cls(
            account_id=message.account_id,
            path=path,
            outcome=outcome,
            msg_type=message.msg_type,
            msg_id=message.msg_id,
            chat_type=str(message.chat_type),
            reply_to=message.reply_to(),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["outcome"] = str(self.outcome)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class WebhookEventLog:
    """Recent callback events plus lifetime outcome counters per account."""

    _instance: ClassVar[WebhookEventLog | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, max_entries: int = 500) -> None:
        self._events: deque[CallbackEvent] = deque(maxlen=max_entries)
        self._counts: dict[str, Counter[CallbackOutcome]] = {}
        self._store_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> WebhookEventLog:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None

    def add(self, event: CallbackEvent) -> None:
        with self._store_lock:
            self._events.append(event)
            self._counts.setdefault(event.account_id, Counter())[event.outcome] += 1

    def record(
        self,
        account_id: str,
        path: str,
        outcome: CallbackOutcome | str,
        msg_type: str = "",
        msg_id: str = "",
    ) -> CallbackEvent:
        """Record a callback that never produced an ``InboundMessage``."""
        event = CallbackEvent(
            account_id=account_id,
            path=path,
            outcome=CallbackOutcome(outcome),
            msg_type=msg_type,
            msg_id=msg_id,
        )
        self.add(event)
        return event

    def record_message(
        self, path: str, outcome: CallbackOutcome | str, message: InboundMessage
    ) -> CallbackEvent:
        event = CallbackEvent.for_message(path, CallbackOutcome(outcome), message)
        self.add(event)
        return event

    def recent(
        self,
        limit: int = 50,
        account_id: str | None = None,
        outcome: CallbackOutcome | str | None = None,
    ) -> list[dict]:
        """Newest-first events, optionally for one account and/or outcome."""
        wanted = CallbackOutcome(outcome) if outcome else None
        with self._store_lock:
            events = list(self._events)

        selected = []
        for event in reversed(events):
            if account_id is not None and event.account_id != account_id:
                continue
            if wanted is not None and event.outcome != wanted:
                continue
            selected.append(event.to_dict())
            if len(selected) >= limit:
                break
        return selected

    def counts(self, account_id: str | None = None) -> dict[str, int]:
        """Lifetime outcome totals, every outcome present (zero if unseen)."""
        with self._store_lock:
            if account_id is not None:
                counter = Counter(self._counts.get(account_id, {}))
            else:
                counter = sum(self._counts.values(), Counter())
        return {str(outcome): counter[outcome] for outcome in CallbackOutcome}

    def rejected_total(self, account_id: str | None = None) -> int:
        """Callbacks refused before reaching the host runtime."""
        counts = self.counts(account_id)
        return sum(
            counts[str(o)]
            for o in (
                CallbackOutcome.BAD_SIGNATURE,
                CallbackOutcome.UNDECRYPTABLE,
                CallbackOutcome.BLOCKED,
            )
        )
