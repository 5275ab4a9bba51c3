# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Narrow interface between the pipeline and the message bus.

Adapters implement peek-lock semantics: a received item stays locked until
it is settled, and an item that is never settled is released back to the
subscription when its lock expires.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models import BusMessage


@runtime_checkable
class MessageBus(Protocol):
    """Session-scoped bus handle, opened and closed once per batch pass.

    Every settlement method raises ``SettlementError`` on failure.
    """

    async def receive_batch(self, max_count: int) -> list[BusMessage]:
        """Receive up to ``max_count`` locked messages."""
        ...

    async def complete(self, message: BusMessage) -> None:
        """Remove a delivered message from the subscription."""
        ...

    async def dead_letter(self, message: BusMessage, reason: str, description: str | None = None) -> None:
        """Move a message to the subscription's dead-letter queue."""
        ...

    async def schedule_redelivery(self, original: BusMessage, clone: BusMessage, not_before: datetime) -> None:
        """Enqueue ``clone`` for delivery at ``not_before`` and retire ``original``."""
        ...

    async def close(self) -> None:
        """Release receivers, senders and the underlying connection."""
        ...
