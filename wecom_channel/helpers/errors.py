"""Exception types shared by the WeCom channel helpers."""

from __future__ import annotations

import traceback


class WecomChannelError(Exception):
    """Base class for errors raised by the channel adapter."""


class ConfigError(WecomChannelError):
    """Configuration file could not be read or failed validation."""


class WecomCryptoError(WecomChannelError):
    """Callback envelope could not be decrypted or encrypted."""


def format_error(e: Exception, include_trace: bool = False) -> str:
    """Render an exception for logs and development error responses."""
    message = f"{type(e).__name__}: {e}"
    if include_trace:
        trace = "".join(traceback.format_exception(type(e), e, e.__traceback__))
        return f"{message}\n{trace}"
    return message
