# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Service-to-service token lease.

The identity service hands out short-lived bearer credentials in exchange
for a time-based one-time password computed from a shared secret::

    POST {s2s_url}/lease
    {"microservice": "payment_app", "oneTimePassword": "123456"}

    200 OK
    eyJhbGciOi...
"""

from __future__ import annotations

import asyncio

import aiohttp
import pyotp

from .exceptions import AuthError
from .logger import get_logger

logger = get_logger("TokenProvider")

LEASE_PATH = "lease"


def one_time_password(secret: str) -> str:
    """Return the current 6-digit TOTP for a base32 ``secret``."""
    return pyotp.TOTP(secret).now()


class TokenProvider:
    """Lease S2S tokens from the identity service.

    Attributes:
        s2s_url: Base URL of the identity service.
        microservice: Identifier this service leases tokens as.
    """

    def __init__(self, s2s_url: str, secret: str, microservice: str):
        self.s2s_url = s2s_url
        self.microservice = microservice
        self._secret = secret

    @property
    def lease_url(self) -> str:
        return f"{self.s2s_url.rstrip('/')}/{LEASE_PATH}"

    async def obtain_token(self, session: aiohttp.ClientSession, correlation_id: str | None = None) -> str:
        """Lease a bearer credential for one outbound callback.

        Args:
            session: Open HTTP session shared by the batch pass.
            correlation_id: Id used in log lines.

        Raises:
            AuthError: On transport failures and non-2xx responses.
        """
        request = {
            "microservice": self.microservice,
            "oneTimePassword": one_time_password(self._secret),
        }
        try:
            async with session.post(self.lease_url, json=request) as resp:
                token = await resp.text()
                if not 200 <= resp.status < 300:
                    raise AuthError(
                        f"S2S lease returned HTTP {resp.status}",
                        correlation_id=correlation_id,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise AuthError(f"S2S lease failed: {exc}", correlation_id=correlation_id) from exc
        if not token:
            raise AuthError("S2S lease returned an empty token", correlation_id=correlation_id)
        logger.info("%s: S2S Token Retrieved.......", correlation_id)
        return token.strip()
