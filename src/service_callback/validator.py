# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Minimum-shape validation for received callback messages.

A message is deliverable when it has a readable, non-empty body and a
properties mapping carrying ``serviceCallbackUrl`` (or its lowercase
variant ``servicecallbackurl``). Validation never mutates the message and
never raises: a broken accessor simply makes the message invalid.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from .exceptions import MessageValidationError
from .logger import get_logger
from .models import CALLBACK_URL_KEYS, CallbackRequest

logger = get_logger("MessageValidator")


def _check(message: Any, correlation_id: Any) -> None:
    """Raise ``MessageValidationError`` describing the first missing piece."""
    body = message.body
    if not body:
        raise MessageValidationError("No body received", correlation_id=correlation_id)
    logger.info("%s: Received callback message: %s", correlation_id, body)

    properties = message.properties
    if not properties:
        raise MessageValidationError("No userProperties data", correlation_id=correlation_id)
    if not any(properties.get(key) for key in CALLBACK_URL_KEYS):
        raise MessageValidationError("No service callback url...", correlation_id=correlation_id)


def validate(message: Any, correlation_id: Any = None) -> bool:
    """Return True when ``message`` can be handed to the dispatcher.

    Args:
        message: A ``BusMessage`` or any object exposing ``body`` and
            ``properties``.
        correlation_id: Id used in log lines; defaults to the message's own.
    """
    if correlation_id is None:
        correlation_id = getattr(message, "correlation_id", None)
    try:
        _check(message, correlation_id)
    except MessageValidationError as exc:
        logger.info("%s: %s", correlation_id, exc)
        return False
    except Exception as exc:
        logger.warning("%s: Message could not be read: %r", correlation_id, exc)
        return False
    logger.info("%s: Received Callback Message is Valid!!!", correlation_id)
    return True


def normalise(message: Any) -> CallbackRequest:
    """Build the canonical ``CallbackRequest`` for a validated message.

    Raises:
        MessageValidationError: If the properties do not yield a callback URL.
    """
    properties = dict(message.properties or {})
    # First non-blank spelling wins.
    for key in CALLBACK_URL_KEYS:
        if properties.get(key):
            properties.setdefault("callback_url", properties[key])
            break
    try:
        return CallbackRequest.model_validate(
            {k: v for k, v in properties.items() if k not in CALLBACK_URL_KEYS}
        )
    except ValidationError as exc:
        raise MessageValidationError(
            f"Invalid callback properties: {exc.errors()[0]['msg']}",
            correlation_id=getattr(message, "correlation_id", None),
        ) from exc
