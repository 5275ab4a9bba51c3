# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""One-shot SMTP delivery for operator notifications.

Dead-letter emails are rare, so every send opens its own connection and
closes it afterwards; there is no pool to keep warm.

TLS behaviour follows the ``secure`` flag and the port:

- ``secure=True``: implicit TLS on connect (port 465)
- ``secure=False`` on port 587: STARTTLS upgrade
- otherwise: plain SMTP
"""

from __future__ import annotations

import asyncio
import ssl
from email.message import EmailMessage

import aiosmtplib

from .config_loader import SmtpConfig

SUBMISSION_PORT = 587

_TLS_VERSIONS = {
    "tlsv1": ssl.TLSVersion.TLSv1,
    "tlsv1_1": ssl.TLSVersion.TLSv1_1,
    "tlsv1_2": ssl.TLSVersion.TLSv1_2,
    "tlsv1_3": ssl.TLSVersion.TLSv1_3,
}


def build_tls_context(tls_protocol: str | None) -> ssl.SSLContext | None:
    """Return an SSL context pinned to a minimum TLS version, or None for defaults.

    Accepts names such as ``TLSv1_2``, ``TLSv1.2`` or ``TLSv1_2_method``.
    """
    if not tls_protocol:
        return None
    key = tls_protocol.strip().lower().replace(".", "_").removesuffix("_method")
    version = _TLS_VERSIONS.get(key)
    if version is None:
        raise ValueError(f"Unsupported TLS protocol: {tls_protocol}")
    context = ssl.create_default_context()
    context.minimum_version = version
    return context


def _client(config: SmtpConfig) -> aiosmtplib.SMTP:
    tls_context = build_tls_context(config.tls_protocol)
    port = int(config.port)
    if config.secure:
        return aiosmtplib.SMTP(
            hostname=config.host, port=port, use_tls=True, start_tls=False,
            tls_context=tls_context, timeout=10.0,
        )
    if port == SUBMISSION_PORT:
        return aiosmtplib.SMTP(
            hostname=config.host, port=port, use_tls=False, start_tls=True,
            tls_context=tls_context, timeout=10.0,
        )
    return aiosmtplib.SMTP(hostname=config.host, port=port, use_tls=False, start_tls=False, timeout=10.0)


async def send_mail(config: SmtpConfig, message: EmailMessage) -> None:
    """Connect, authenticate when credentials are set, send and quit.

    Raises:
        asyncio.TimeoutError: If connecting or sending exceeds 30 seconds.
        aiosmtplib.SMTPException: On any SMTP-level failure.
    """
    smtp = _client(config)

    async def _deliver() -> None:
        await smtp.connect()
        try:
            if config.auth:
                await smtp.login(config.user, config.password)
            await smtp.send_message(message)
        finally:
            await smtp.quit()

    await asyncio.wait_for(_deliver(), timeout=30.0)
