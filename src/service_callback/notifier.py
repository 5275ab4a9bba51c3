# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Operator email for messages dead-lettered after exhausting retries."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from email.message import EmailMessage
from typing import Any

from .config_loader import DeadLetterEmailConfig, SmtpConfig
from .exceptions import NotificationError
from .logger import get_logger
from .models import CallbackRequest
from .smtp_client import send_mail

logger = get_logger("DeadLetterNotifier")

MailSender = Callable[[SmtpConfig, EmailMessage], Awaitable[None]]

EMAIL_TEMPLATE = (
    "Callback message has been dead-lettered after reaching the maximum number of retries.\n"
    "\n"
    "Correlation Id: {correlation_id}\n"
    "Retry Count: {retries}\n"
    "Service Name: {service_name}\n"
    "Service Callback Url: {callback_url}\n"
    "\n"
    "Message Body:\n"
    "{body}\n"
)


def _body_text(body: Any) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    return json.dumps(body)


def render_summary(request: CallbackRequest, correlation_id: str, body: Any) -> str:
    return EMAIL_TEMPLATE.format(
        correlation_id=correlation_id,
        retries=request.retries,
        service_name=request.service_name,
        callback_url=request.callback_url,
        body=_body_text(body),
    )


class DeadLetterNotifier:
    """Best-effort email on terminal dead-letter.

    Args:
        config: Dead-letter email block of the service settings.
        sender: Coroutine delivering an ``EmailMessage``; defaults to
            ``smtp_client.send_mail``.
    """

    def __init__(self, config: DeadLetterEmailConfig, sender: MailSender | None = None):
        self.config = config
        self._sender = sender or send_mail

    @property
    def active(self) -> bool:
        return self.config.enabled and self.config.is_complete

    def build_message(self, request: CallbackRequest, correlation_id: str, body: Any) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.config.from_address
        msg["To"] = self.config.to_address
        msg["Subject"] = self.config.subject
        msg.set_content(render_summary(request, correlation_id, body), subtype="plain")
        return msg

    async def notify(self, request: CallbackRequest, correlation_id: str, body: Any) -> bool | None:
        """Send the summary email; never raises.

        Returns:
            None when notifications are disabled or incomplete, otherwise
            whether the email was handed to the SMTP server.
        """
        if not self.config.enabled:
            return None
        if not self.config.is_complete:
            logger.warning(
                "%s: Dead-letter email enabled but not fully configured, skipping",
                correlation_id,
            )
            return None
        try:
            message = self.build_message(request, correlation_id, body)
            await self._sender(self.config.smtp, message)
        except Exception as exc:
            error = NotificationError(f"Dead-letter email failed: {exc}", correlation_id=correlation_id)
            logger.error("%s: %s", correlation_id, error)
            return False
        logger.info("%s: Dead-letter email sent to %s", correlation_id, self.config.to_address)
        return True
