"""Outbound delivery through callback reply handles.

WeCom intelligent bots have no standalone send API: a reply is a POST to
the ``response_url`` of a recent callback. Every send therefore consumes a
handle from the ``ReplyRegistry`` and fails with an explicit result when
there is none. Failures are returned as ``SendResult(ok=False)``, never
raised, so batch callers can carry on with other recipients.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from wecom_channel.helpers.accounts import ConfigInput, resolve_default_account_id
from wecom_channel.helpers.channel_models import SendResult
from wecom_channel.helpers.reply_registry import ReplyRegistry
from wecom_channel.helpers.targets import format_target, parse_target, sanitize_log_value

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0


def text_payload(text: str) -> dict[str, Any]:
    return {"msgtype": "text", "text": {"content": text}}


def file_payload(media_url: str) -> dict[str, Any]:
    return {"msgtype": "file", "file": {"url": media_url}}


async def _post_json(
    url: str, payload: dict[str, Any], client: httpx.AsyncClient | None
) -> httpx.Response:
    if client is not None:
        return await client.post(url, json=payload)
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as owned:
        return await owned.post(url, json=payload)


def _response_error(response: httpx.Response) -> str | None:
    """Error text for a non-2xx status or a WeCom ``errcode`` body."""
    if not response.is_success:
        return f"WeCom reply failed with HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("errcode", 0) not in (0, "0"):
        return f"WeCom reply rejected: {data.get('errcode')} {data.get('errmsg', '')}".strip()
    return None


async def _deliver(
    cfg: ConfigInput,
    to: str,
    payload: dict[str, Any],
    account_id: str | None,
    client: httpx.AsyncClient | None,
) -> SendResult:
    target = parse_target(to)
    if target is None:
        return SendResult(ok=False, error=f"Invalid WeCom target: {to!r}")

    account = account_id or target.account_id or resolve_default_account_id(cfg)
    recipient = format_target(target.model_copy(update={"account_id": None}))
    handle = ReplyRegistry.get_instance().consume(account, recipient)
    if handle is None:
        return SendResult(
            ok=False,
            error=(
                f"No reply channel available for {recipient} (account {account}): "
                "WeCom intelligent bots can only reply within a callback window."
            ),
        )

    try:
        response = await _post_json(handle.response_url, payload, client)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(
            "WeCom reply to %s failed: %s", sanitize_log_value(recipient), e
        )
        return SendResult(ok=False, error=f"WeCom reply transport error: {e}")

    error = _response_error(response)
    if error:
        logger.warning("%s (target %s)", error, sanitize_log_value(recipient))
        return SendResult(ok=False, error=error)

    return SendResult(ok=True, message_id=uuid.uuid4().hex)


async def send_text(
    cfg: ConfigInput,
    to: str,
    text: str,
    account_id: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Reply to *to* with a text message."""
    if not (text or "").strip():
        return SendResult(ok=False, error="Refusing to send an empty WeCom message.")
    return await _deliver(cfg, to, text_payload(text), account_id, client)


async def send_media(
    cfg: ConfigInput,
    to: str,
    media_url: str,
    mime_type: str | None = None,
    account_id: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Reply to *to* with a file link; *mime_type* is informational only."""
    if not (media_url or "").strip():
        return SendResult(ok=False, error="Missing media URL for WeCom reply.")
    logger.debug("Sending WeCom file reply (%s)", mime_type or "unknown type")
    return await _deliver(cfg, to, file_payload(media_url), account_id, client)
