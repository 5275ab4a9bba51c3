# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Azure Service Bus adapter (optional extra: service-callback[azure]).

One ``AzureServiceBus`` instance is one bus session: it owns a client, a
peek-lock subscription receiver and, lazily, a topic sender used to schedule
retry clones. ``close`` releases all three.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from azure.servicebus import ServiceBusMessage, ServiceBusReceiveMode
from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.exceptions import ServiceBusError

from ..exceptions import SettlementError
from ..logger import get_logger
from ..models import BusMessage

logger = get_logger("AzureServiceBus")


def _text(value: Any) -> Any:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _read_body(received: Any) -> Any:
    """Flatten a received body into a string; returns None when unreadable."""
    try:
        body = received.body
        if isinstance(body, (bytes, str)):
            return _text(body)
        if isinstance(body, (dict, list)):
            return body
        return b"".join(body).decode("utf-8")
    except Exception as exc:
        logger.warning("Unreadable body on message %s: %s", received.message_id, exc)
        return None


class AzureServiceBus:
    """``MessageBus`` implementation over ``azure.servicebus.aio``."""

    def __init__(
        self,
        connection_string: str,
        topic_name: str,
        subscription_name: str,
        *,
        max_wait_time: float = 5.0,
    ):
        self._topic_name = topic_name
        self._subscription_name = subscription_name
        self._max_wait_time = max_wait_time
        self._client = ServiceBusClient.from_connection_string(connection_string)
        self._receiver = self._client.get_subscription_receiver(
            topic_name=topic_name,
            subscription_name=subscription_name,
            receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
        )
        self._sender = None

    def _to_bus_message(self, received: Any) -> BusMessage:
        raw_properties = received.application_properties
        properties = None
        if raw_properties is not None:
            properties = {_text(key): _text(value) for key, value in raw_properties.items()}
        return BusMessage(
            body=_read_body(received),
            properties=properties,
            correlation_id=_text(received.correlation_id),
            message_id=_text(received.message_id),
            handle=received,
        )

    async def receive_batch(self, max_count: int) -> list[BusMessage]:
        received = await self._receiver.receive_messages(
            max_message_count=max_count,
            max_wait_time=self._max_wait_time,
        )
        return [self._to_bus_message(item) for item in received]

    async def complete(self, message: BusMessage) -> None:
        try:
            await self._receiver.complete_message(message.handle)
        except ServiceBusError as exc:
            raise SettlementError(f"complete failed: {exc}", correlation_id=message.correlation_id) from exc

    async def dead_letter(self, message: BusMessage, reason: str, description: str | None = None) -> None:
        try:
            await self._receiver.dead_letter_message(message.handle, reason=reason, error_description=description)
        except ServiceBusError as exc:
            raise SettlementError(f"dead-letter failed: {exc}", correlation_id=message.correlation_id) from exc

    async def schedule_redelivery(self, original: BusMessage, clone: BusMessage, not_before: datetime) -> None:
        if self._sender is None:
            self._sender = self._client.get_topic_sender(topic_name=self._topic_name)
        outgoing = ServiceBusMessage(
            clone.body,
            application_properties=dict(clone.properties or {}),
            correlation_id=clone.correlation_id,
        )
        try:
            await self._sender.schedule_messages(outgoing, not_before)
        except ServiceBusError as exc:
            raise SettlementError(f"scheduling failed: {exc}", correlation_id=original.correlation_id) from exc
        try:
            await self._receiver.complete_message(original.handle)
        except ServiceBusError as exc:
            # The clone is already scheduled; the original comes back after lock expiry.
            raise SettlementError(
                f"retry clone scheduled but original could not be retired: {exc}",
                correlation_id=original.correlation_id,
            ) from exc

    async def close(self) -> None:
        if self._sender is not None:
            await self._sender.close()
        await self._receiver.close()
        await self._client.close()
