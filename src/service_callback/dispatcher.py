# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Authenticated delivery of message bodies to service callback URLs.

The dispatcher never raises for delivery problems: every attempt is turned
into a ``DeliveryOutcome`` that the retry coordinator acts upon.
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any

import aiohttp

from .exceptions import DeliveryError
from .logger import get_logger
from .models import DeliveryOutcome, RecoverableFailure, Success

logger = get_logger("CallbackDispatcher")


def _encode_body(body: Any) -> bytes | str:
    if isinstance(body, (bytes, str)):
        return body
    return json.dumps(body)


def _headers_snapshot(headers: dict[str, str]) -> str:
    """Base64 of the JSON-encoded request options, for extended logging."""
    return base64.b64encode(json.dumps({"headers": headers}).encode("utf-8")).decode("ascii")


async def _response_text(resp: aiohttp.ClientResponse, correlation_id: str | None) -> str:
    """Read the response body for logging; the status alone decides the outcome."""
    try:
        return await resp.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError, LookupError) as exc:
        logger.warning("%s: Could not read callback response body: %r", correlation_id, exc)
        return ""


class CallbackDispatcher:
    """PUT message bodies to callback URLs with an S2S credential.

    Attributes:
        extended_logging: When True, log a base64 snapshot of request headers.
    """

    def __init__(self, *, extended_logging: bool = False):
        self.extended_logging = bool(extended_logging)

    @staticmethod
    def build_headers(credential: str) -> dict[str, str]:
        return {
            "ServiceAuthorization": credential,
            "Content-Type": "application/json",
        }

    async def _put(
        self,
        session: aiohttp.ClientSession,
        url: str,
        body: Any,
        headers: dict[str, str],
        correlation_id: str | None,
    ) -> str:
        try:
            async with session.put(url, data=_encode_body(body), headers=headers) as resp:
                response_body = await _response_text(resp, correlation_id)
                logger.info("%s: Response: %s", correlation_id, response_body)
                if not 200 <= resp.status < 300:
                    raise DeliveryError(
                        f"Error in Calling Service: HTTP {resp.status} {response_body}",
                        status=resp.status,
                        correlation_id=correlation_id,
                    )
                return response_body
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise DeliveryError(
                f"Error in fetching callback request: {exc}",
                correlation_id=correlation_id,
            ) from exc

    async def dispatch(
        self,
        session: aiohttp.ClientSession,
        url: str,
        body: Any,
        credential: str,
        correlation_id: str | None = None,
    ) -> DeliveryOutcome:
        """Deliver ``body`` to ``url`` and classify the result.

        Args:
            session: Open HTTP session shared by the batch pass.
            url: Callback URL taken from the message properties.
            body: Message payload, sent verbatim.
            credential: S2S bearer token.
            correlation_id: Id used in log lines.

        Returns:
            ``Success`` for 2xx responses, ``RecoverableFailure`` otherwise.
        """
        headers = self.build_headers(credential)
        if self.extended_logging:
            logger.info("%s: Headers: %s", correlation_id, _headers_snapshot(headers))
        logger.info("%s: About to post callback URL %s", correlation_id, url)
        try:
            response_body = await self._put(session, url, body, headers, correlation_id)
        except DeliveryError as exc:
            logger.warning("%s: %s", correlation_id, exc)
            return RecoverableFailure(str(exc))
        logger.info("%s: Message Sent Successfully to %s", correlation_id, url)
        return Success(response_body)
