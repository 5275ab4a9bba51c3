# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-memory message bus for local runs and tests.

Keeps a ready queue, a schedule of future redeliveries and the record of
every settlement, so a test can replay several passes over the same logical
message and inspect what happened to each bus item.

Example:
    Replaying a retried message::

        bus = InMemoryBus()
        bus.send(BusMessage(body='{"amount": 1}', properties={...}))
        await service.run_once()     # fails, clone scheduled
        bus.release_scheduled()      # make the clone ready now
        await service.run_once()
"""

from __future__ import annotations

import dataclasses
import itertools
from collections.abc import Callable
from datetime import datetime, timezone

from ..exceptions import SettlementError
from ..models import BusMessage

_ids = itertools.count(1)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryBus:
    """Process-local bus implementing the ``MessageBus`` protocol.

    Attributes:
        ready: Items available to the next ``receive_batch``.
        scheduled: ``(not_before, message)`` pairs waiting for their time.
        locked: Items received and not yet settled, by message id.
        completed: Items completed, in settlement order.
        dead_lettered: ``(message, reason, description)`` triples.
        retired: Originals retired by ``schedule_redelivery``.
        closed: Number of times ``close`` was called.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utc_now
        self.ready: list[BusMessage] = []
        self.scheduled: list[tuple[datetime, BusMessage]] = []
        self.locked: dict[str, BusMessage] = {}
        self.completed: list[BusMessage] = []
        self.dead_lettered: list[tuple[BusMessage, str, str | None]] = []
        self.retired: list[BusMessage] = []
        self.closed = 0

    def send(self, message: BusMessage) -> BusMessage:
        """Enqueue a message for immediate delivery, assigning a message id."""
        stored = message if message.message_id else _with_id(message)
        self.ready.append(stored)
        return stored

    def release_scheduled(self) -> int:
        """Move every scheduled message to the ready queue regardless of time."""
        released = [message for _, message in self.scheduled]
        self.scheduled.clear()
        self.ready.extend(released)
        return len(released)

    def release_expired_locks(self) -> int:
        """Simulate lock expiry: unsettled items become receivable again."""
        expired = list(self.locked.values())
        self.locked.clear()
        self.ready.extend(expired)
        return len(expired)

    def _promote_due(self) -> None:
        now = self._clock()
        due = [entry for entry in self.scheduled if entry[0] <= now]
        for entry in due:
            self.scheduled.remove(entry)
            self.ready.append(entry[1])

    async def receive_batch(self, max_count: int) -> list[BusMessage]:
        self._promote_due()
        batch = self.ready[:max_count]
        del self.ready[:max_count]
        for message in batch:
            self.locked[message.message_id] = message
        return batch

    def _unlock(self, message: BusMessage, operation: str) -> BusMessage:
        try:
            return self.locked.pop(message.message_id)
        except KeyError:
            raise SettlementError(
                f"Cannot {operation} message {message.message_id}: lock lost or already settled",
                correlation_id=message.correlation_id,
            ) from None

    async def complete(self, message: BusMessage) -> None:
        self.completed.append(self._unlock(message, "complete"))

    async def dead_letter(self, message: BusMessage, reason: str, description: str | None = None) -> None:
        self.dead_lettered.append((self._unlock(message, "dead-letter"), reason, description))

    async def schedule_redelivery(self, original: BusMessage, clone: BusMessage, not_before: datetime) -> None:
        if original.message_id not in self.locked:
            raise SettlementError(
                f"Cannot reschedule message {original.message_id}: lock lost or already settled",
                correlation_id=original.correlation_id,
            )
        self.scheduled.append((not_before, _with_id(clone)))
        self.retired.append(self._unlock(original, "reschedule"))

    async def close(self) -> None:
        self.closed += 1


def _with_id(message: BusMessage) -> BusMessage:
    return dataclasses.replace(message, message_id=f"mem-{next(_ids)}")
