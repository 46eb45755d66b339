"""Inbound WeCom callback handling.

The gateway registers one ``WebhookTarget`` per running account. Several
accounts may share a path; the callback's ``msg_signature`` decides which
account it belongs to.

For each accepted callback the ``response_url`` is registered in the
``ReplyRegistry`` so the host can reply through the outbound sender, and
the message is dispatched to the bound host runtime when there is one.
"""

from __future__ import annotations

import inspect
import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, ClassVar

from wecom_channel.helpers.accounts import (
    ResolvedAccount,
    is_allowed,
    normalize_webhook_path,
    resolve_allow_from,
    resolve_group_allow_from,
)
from wecom_channel.helpers.channel_config import PluginConfig
from wecom_channel.helpers.channel_models import (
    CHANNEL_ID,
    CallbackOutcome,
    ChatType,
    InboundMessage,
    ReplyHandle,
    SendResult,
    TargetKind,
)
from wecom_channel.helpers.errors import WecomCryptoError, format_error
from wecom_channel.helpers.outbound import send_text
from wecom_channel.helpers.reply_registry import ReplyRegistry
from wecom_channel.helpers.runtime import BoundRuntime, get_wecom_runtime
from wecom_channel.helpers.targets import sanitize_log_value
from wecom_channel.helpers.webhook_event_log import UNATTRIBUTED, WebhookEventLog
from wecom_channel.helpers.webhook_verify import verify_wecom_signature
from wecom_channel.helpers.wecom_crypto import WecomCrypto

logger = logging.getLogger(__name__)

StatusSink = Callable[[dict[str, Any]], None]

# Streaming-refresh polls carry no new user message.
_IGNORED_MSG_TYPES = {"stream"}


@dataclass
class WebhookTarget:
    account: ResolvedAccount
    config: PluginConfig
    path: str
    log: Callable[[str], None]
    error: Callable[[str], None]
    status_sink: StatusSink | None = None

    def report(self, patch: dict[str, Any]) -> None:
        if self.status_sink is not None:
            self.status_sink(patch)


@dataclass
class WebhookResponse:
    status: int
    body: str = ""
    content_type: str = "text/plain"


class WebhookTargetRegistry:
    """Thread-safe map of webhook path to registered targets."""

    _instance: ClassVar[WebhookTargetRegistry | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        self._targets: dict[str, list[WebhookTarget]] = {}
        self._store_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> WebhookTargetRegistry:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None

    def register(self, target: WebhookTarget) -> Callable[[], None]:
        """Add *target*; the returned callable removes exactly this target."""
        path = normalize_webhook_path(target.path)
        target.path = path
        with self._store_lock:
            self._targets.setdefault(path, []).append(target)

        def unregister() -> None:
            with self._store_lock:
                current = self._targets.get(path, [])
                remaining = [t for t in current if t is not target]
                if remaining:
                    self._targets[path] = remaining
                else:
                    self._targets.pop(path, None)

        return unregister

    def targets_for(self, path: str) -> list[WebhookTarget]:
        with self._store_lock:
            return list(self._targets.get(normalize_webhook_path(path), []))

    def paths(self) -> list[str]:
        with self._store_lock:
            return sorted(self._targets)

    def clear(self) -> None:
        with self._store_lock:
            self._targets.clear()


def register_webhook_target(target: WebhookTarget) -> Callable[[], None]:
    return WebhookTargetRegistry.get_instance().register(target)


def _section(payload: dict[str, Any], name: str) -> dict[str, Any]:
    value = payload.get(name)
    return value if isinstance(value, dict) else {}


def _content(section: dict[str, Any]) -> str:
    content = section.get("content")
    return content if isinstance(content, str) else ""


def _text_of(payload: dict[str, Any], msg_type: str) -> str:
    if msg_type in ("text", "voice"):
        return _content(_section(payload, msg_type))
    if msg_type == "mixed":
        items = _section(payload, "mixed").get("msg_item")
        if not isinstance(items, list):
            return ""
        parts = [
            _content(_section(item, "text"))
            for item in items
            if isinstance(item, dict) and item.get("msgtype") == "text"
        ]
        return "\n".join(p for p in parts if p)
    return ""


def _scalar(value: Any) -> str:
    """Text form of an id-like field; containers and null become empty."""
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value).strip()
    return ""


def parse_inbound_payload(
    payload: dict[str, Any], account_id: str
) -> InboundMessage | None:
    """Normalize a decrypted callback body; None for non-message callbacks."""
    msg_type = _scalar(payload.get("msgtype"))
    if not msg_type or msg_type in _IGNORED_MSG_TYPES:
        return None
    sender_id = _scalar(_section(payload, "from").get("userid"))
    if not sender_id:
        return None

    chat_type = (
        ChatType.GROUP if payload.get("chattype") == ChatType.GROUP else ChatType.SINGLE
    )
    response_url = payload.get("response_url")
    if not isinstance(response_url, str):
        response_url = ""
    return InboundMessage(
        msg_id=_scalar(payload.get("msgid")),
        account_id=account_id,
        chat_type=chat_type,
        chat_id=_scalar(payload.get("chatid")) or None,
        sender_id=sender_id,
        msg_type=msg_type,
        text=_text_of(payload, msg_type),
        response_url=response_url.strip() or None,
        raw=payload,
    )


def _match_target(
    targets: list[WebhookTarget], query: Mapping[str, Any], encrypt: str
) -> WebhookTarget | None:
    for target in targets:
        if verify_wecom_signature(
            target.account.token,
            query.get("msg_signature"),
            query.get("timestamp"),
            query.get("nonce"),
            encrypt,
        ):
            return target
    return None


def _crypto_for(target: WebhookTarget) -> WecomCrypto:
    return WecomCrypto(target.account.encoding_aes_key, target.account.receive_id)


def _sender_allowed(target: WebhookTarget, message: InboundMessage) -> bool:
    config = target.account.config
    allow_from = resolve_allow_from(config)
    if message.chat_type == ChatType.GROUP:
        allow_from = resolve_group_allow_from(config) or allow_from
    return is_allowed(allow_from, message.sender_id)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def dispatch_inbound(target: WebhookTarget, message: InboundMessage) -> bool:
    """Hand *message* to the bound host runtime; False when nothing is bound.

    Dispatch failures are logged and reported through the status sink.
    """
    binding = get_wecom_runtime()
    if not isinstance(binding, BoundRuntime):
        target.log(
            f"[wecom] {binding.reason}; message {message.msg_id} not dispatched"
        )
        return False

    reply_to = message.reply_to()
    account_id = target.account.account_id

    async def deliver(text: str) -> SendResult:
        return await send_text(target.config, reply_to, text, account_id=account_id)

    peer_kind = TargetKind.GROUP if message.chat_type == ChatType.GROUP else TargetKind.USER
    try:
        route = await _maybe_await(
            binding.resolve_agent_route(
                channel=CHANNEL_ID,
                account_id=account_id,
                peer={"kind": str(peer_kind), "id": message.chat_id or message.sender_id},
            )
        )
        await _maybe_await(
            binding.dispatch_reply_from_config(
                cfg=target.config,
                route=route,
                message=message,
                deliver=deliver,
            )
        )
    except Exception as e:
        logger.exception(
            "WeCom dispatch failed for account %s", sanitize_log_value(account_id)
        )
        target.error(f"[wecom] dispatch failed for {message.msg_id}: {format_error(e)}")
        target.report({"last_error": str(e)})
        return False
    return True


def _handle_verification(
    path: str, targets: list[WebhookTarget], query: Mapping[str, Any]
) -> WebhookResponse:
    echostr = query.get("echostr") or ""
    target = _match_target(targets, query, echostr)
    if target is None:
        return WebhookResponse(status=401, body="invalid signature")
    try:
        plain = _crypto_for(target).decrypt(echostr)
    except WecomCryptoError as e:
        target.error(f"[wecom] URL verification failed on {path}: {e}")
        return WebhookResponse(status=400, body="invalid echostr")
    target.log(f"[wecom] URL verified on {path} for account {target.account.account_id}")
    return WebhookResponse(status=200, body=plain)


async def _handle_callback(
    path: str,
    targets: list[WebhookTarget],
    query: Mapping[str, Any],
    body: bytes,
) -> WebhookResponse:
    event_log = WebhookEventLog.get_instance()
    try:
        envelope = json.loads(body or b"{}")
    except ValueError:
        return WebhookResponse(status=400, body="invalid body")
    encrypt = envelope.get("encrypt") if isinstance(envelope, dict) else None
    if not encrypt or not isinstance(encrypt, str):
        return WebhookResponse(status=400, body="missing encrypt")

    target = _match_target(targets, query, encrypt)
    if target is None:
        event_log.record(UNATTRIBUTED, path, CallbackOutcome.BAD_SIGNATURE)
        return WebhookResponse(status=401, body="invalid signature")
    account_id = target.account.account_id

    try:
        payload = json.loads(_crypto_for(target).decrypt(encrypt))
    except (WecomCryptoError, ValueError) as e:
        target.error(f"[wecom] cannot decrypt callback on {path}: {e}")
        event_log.record(account_id, path, CallbackOutcome.UNDECRYPTABLE)
        return WebhookResponse(status=400, body="invalid payload")

    message = parse_inbound_payload(payload, account_id) if isinstance(payload, dict) else None
    if message is None:
        fields = payload if isinstance(payload, dict) else {}
        event_log.record(
            account_id,
            path,
            CallbackOutcome.IGNORED,
            msg_type=_scalar(fields.get("msgtype")),
            msg_id=_scalar(fields.get("msgid")),
        )
        return WebhookResponse(status=200)

    if not _sender_allowed(target, message):
        target.log(
            f"[wecom] sender {sanitize_log_value(message.sender_id)} not in allow-list "
            f"for account {account_id}"
        )
        event_log.record_message(path, CallbackOutcome.BLOCKED, message)
        return WebhookResponse(status=200)

    if message.response_url:
        ReplyRegistry.get_instance().register(
            account_id,
            message.reply_to(),
            ReplyHandle(response_url=message.response_url),
        )
    target.report({"last_inbound_at": message.received_at})
    event_log.record_message(path, CallbackOutcome.ACCEPTED, message)

    await dispatch_inbound(target, message)
    return WebhookResponse(status=200)


async def handle_webhook_request(
    method: str,
    path: str,
    query: Mapping[str, Any],
    body: bytes = b"",
) -> WebhookResponse:
    """Handle one HTTP callback on *path*.

    GET is WeCom's URL verification (decrypted ``echostr`` is echoed back);
    POST carries an encrypted message.
    """
    path = normalize_webhook_path(path)
    targets = WebhookTargetRegistry.get_instance().targets_for(path)
    if not targets:
        return WebhookResponse(status=404, body="not found")

    method = method.upper()
    if method == "GET":
        return _handle_verification(path, targets, query)
    if method == "POST":
        return await _handle_callback(path, targets, query, body)
    return WebhookResponse(status=405, body="method not allowed")
