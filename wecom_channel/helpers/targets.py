"""WeCom target addressing.

Turns a free-form address into a ``Target``. Accepted forms:

- ``wecom:user:<userid>`` / ``user:<userid>``: explicit user, mixed case ok
- ``group:<chatid>`` / ``chat:<chatid>``: group chat
- ``<userid>``: bare user id, lowercase only
- any of the above with a trailing ``@<accountId>``

Bare ids are restricted to lowercase machine ids so that a display name
like ``ZhangChongWen`` is rejected instead of being delivered to whoever
happens to own that string as an id.
"""

from __future__ import annotations

import re

from wecom_channel.helpers.channel_models import CHANNEL_ID, Target, TargetKind

PLATFORM_PREFIX = f"{CHANNEL_ID}:"

BARE_USER_ID_RE = re.compile(r"[a-z0-9][a-z0-9._@-]{0,63}")
EXPLICIT_USER_ID_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._@-]{0,63}")
GROUP_ID_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._:@-]{0,127}")

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_ACCOUNT_SEPARATOR_RE = re.compile(r"[:/\s]")
_WHITESPACE_RE = re.compile(r"\s")
_SAFE_LOG_RE = re.compile(r"[^a-zA-Z0-9_.:@\-/]")

TARGET_FORMATS = [
    f"{PLATFORM_PREFIX}user:<userId>",
    "user:<userId>",
    "group:<chatId>",
    "<userid-lowercase>",
]

TARGET_HINT = (
    "Use WeCom ids only: user:<userid> for DM, group:<chatid> for groups "
    "(optional @accountId)."
)


def sanitize_log_value(value: str) -> str:
    """Sanitize user input for safe logging."""
    return _SAFE_LOG_RE.sub("_", str(value))[:128]


def _looks_like_email(raw: str) -> bool:
    return _EMAIL_RE.fullmatch(raw.strip()) is not None


def _split_account(raw: str) -> tuple[str, str | None]:
    """Split a trailing ``@account`` qualifier off *raw*."""
    if _looks_like_email(raw):
        return raw, None
    at = raw.rfind("@")
    if 0 < at < len(raw) - 1:
        candidate = raw[at + 1 :]
        if not _ACCOUNT_SEPARATOR_RE.search(candidate):
            return raw[:at], candidate
    return raw, None


def parse_target(raw: str | None) -> Target | None:
    """Parse *raw* into a ``Target``, or ``None`` if it cannot be addressed."""
    text = str(raw or "").strip()
    if not text:
        return None

    if text.startswith(PLATFORM_PREFIX):
        text = text[len(PLATFORM_PREFIX) :]

    text, account_id = _split_account(text)

    if text.startswith("chat:"):
        text = "group:" + text[len("chat:") :]

    if text.startswith("group:"):
        group_id = text[len("group:") :].strip()
        if not group_id or _WHITESPACE_RE.search(group_id):
            return None
        if not GROUP_ID_RE.fullmatch(group_id):
            return None
        return Target(kind=TargetKind.GROUP, id=group_id, account_id=account_id)

    explicit = text.startswith("user:")
    if explicit:
        text = text[len("user:") :]
    user_id = text.strip()
    if not user_id or _WHITESPACE_RE.search(user_id):
        return None
    pattern = EXPLICIT_USER_ID_RE if explicit else BARE_USER_ID_RE
    if not pattern.fullmatch(user_id):
        return None
    return Target(kind=TargetKind.USER, id=user_id, account_id=account_id)


def format_target(target: Target) -> str:
    """Canonical ``kind:id[@account]`` form of *target*."""
    suffix = f"@{target.account_id}" if target.account_id else ""
    return f"{target.kind}:{target.id}{suffix}"


def can_resolve(raw: str | None) -> bool:
    return parse_target(raw) is not None


def normalize_target(raw: str | None) -> str | None:
    parsed = parse_target(raw)
    if parsed is None:
        return None
    return format_target(parsed)


def looks_like_id(raw: str | None, normalized: str | None = None) -> bool:
    """Address-detection predicate used by the host's target heuristics."""
    candidate = (normalized if normalized is not None else raw) or ""
    return parse_target(candidate.strip()) is not None


def format_target_display(target: str, display: str | None = None) -> str:
    """Prefer the canonical id over any free-text display name."""
    parsed = parse_target(target)
    if parsed is None:
        return (display or "").strip() or target
    return parsed.key()
