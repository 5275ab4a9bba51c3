# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Retry-or-dead-letter decisions for failed deliveries.

A failed message is never redelivered in place. While its ``retries``
property is below ``MAX_RETRIES`` a clone carrying ``retries + 1`` and the
same correlation id is scheduled ``delay_minutes`` in the future and the
original is retired; once the ceiling is reached the next failure
dead-letters it::

    attempt   retries on item   outcome on failure
    1         0                 clone with retries=1
    ...
    5         4                 clone with retries=5
    6         5                 dead-letter + optional email

Settlement failures are logged and the item is left to the bus, which
redelivers it when its lock expires.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from .bus import MessageBus
from .logger import get_logger
from .models import (
    MAX_RETRIES,
    SERVICE_NAME_KEY,
    BusMessage,
    CallbackRequest,
    DeliveryOutcome,
    Invalid,
    RecoverableFailure,
    RetryAction,
    RetryDecision,
    Settlement,
)
from .notifier import DeadLetterNotifier
from .prometheus import CallbackMetrics

logger = get_logger("RetryCoordinator")

REASON_INVALID = "InvalidMessage"
REASON_MAX_RETRIES = "MaxRetriesExceeded"


def decide(retries: int, outcome: DeliveryOutcome, max_retries: int = MAX_RETRIES) -> RetryDecision:
    """Pure decision for a failed attempt.

    Args:
        retries: Retry count carried by the item that just failed.
        outcome: ``Invalid`` or ``RecoverableFailure``.
        max_retries: Retry ceiling.

    Raises:
        ValueError: If called with a successful outcome.
    """
    match outcome:
        case Invalid(reason=reason):
            return RetryDecision(RetryAction.DEAD_LETTER, retries, f"{REASON_INVALID}: {reason}")
        case RecoverableFailure(reason=reason) if retries >= max_retries:
            return RetryDecision(RetryAction.DEAD_LETTER, retries, f"{REASON_MAX_RETRIES}: {reason}")
        case RecoverableFailure(reason=reason):
            return RetryDecision(RetryAction.RETRY, retries + 1, reason)
    raise ValueError(f"No retry decision for outcome {outcome!r}")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _service_of(message: BusMessage) -> str | None:
    try:
        return (message.properties or {}).get(SERVICE_NAME_KEY)
    except Exception:
        return None


def _body_repr(message: Any) -> Any:
    try:
        return message.body
    except Exception:
        return None


class RetryCoordinator:
    """Apply retry decisions against the bus session of a pass.

    Attributes:
        delay_minutes: Delay before a retry clone becomes visible.
        max_retries: Retry ceiling.
    """

    def __init__(
        self,
        notifier: DeadLetterNotifier,
        *,
        delay_minutes: int,
        max_retries: int = MAX_RETRIES,
        metrics: CallbackMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.notifier = notifier
        self.delay_minutes = delay_minutes
        self.max_retries = max_retries
        self.metrics = metrics or CallbackMetrics()
        self._clock = clock or _utc_now

    def retry_at(self) -> datetime:
        return self._clock() + timedelta(minutes=self.delay_minutes)

    async def dead_letter_invalid(
        self, bus: MessageBus, message: BusMessage, correlation_id: str, reason: str
    ) -> Settlement:
        """Dead-letter a message that failed validation; no retry, no email."""
        logger.info(
            "%s: Skipping processing invalid message and sending to dead letter %s",
            correlation_id,
            _body_repr(message),
        )
        decision = decide(0, Invalid(reason), self.max_retries)
        return await self._dead_letter(bus, message, correlation_id, decision, REASON_INVALID)

    async def handle_failure(
        self,
        bus: MessageBus,
        message: BusMessage,
        correlation_id: str,
        outcome: DeliveryOutcome,
        request: CallbackRequest | None = None,
    ) -> Settlement:
        """Retry or dead-letter ``message`` after a failed attempt.

        Args:
            bus: Bus session of the current pass.
            message: The item that failed, with its correlation id assigned.
            correlation_id: Id used in log lines and carried by the clone.
            outcome: Classification of the failed attempt.
            request: Canonical view of the message, used for the email.

        Returns:
            The settlement reached by the item; never raises.
        """
        retries = request.retries if request is not None else message.retries
        decision = decide(retries, outcome, self.max_retries)
        if decision.action is RetryAction.RETRY:
            return await self._reschedule(bus, message, correlation_id, decision)

        logger.info("%s: Max number of retries reached for %s", correlation_id, _body_repr(message))
        settlement = await self._dead_letter(bus, message, correlation_id, decision, REASON_MAX_RETRIES)
        if settlement is Settlement.DEAD_LETTERED and request is not None:
            await self._notify(request, message, correlation_id)
        return settlement

    async def _notify(self, request: CallbackRequest, message: BusMessage, correlation_id: str) -> None:
        # The item is already dead-lettered; nothing here may change that.
        try:
            sent = await self.notifier.notify(request, correlation_id, message.body)
        except Exception:
            logger.exception("%s: Dead-letter notification failed", correlation_id)
            sent = False
        if sent is not None:
            self.metrics.inc_notification(sent)

    async def _reschedule(
        self, bus: MessageBus, message: BusMessage, correlation_id: str, decision: RetryDecision
    ) -> Settlement:
        logger.info("%s: Will retry message at a later time %s", correlation_id, _body_repr(message))
        clone = message.clone(retries=decision.retries).with_correlation_id(correlation_id)
        not_before = self.retry_at()
        try:
            await bus.schedule_redelivery(message, clone, not_before)
        except Exception as exc:
            logger.error("%s: Error while scheduling message %s", correlation_id, exc)
            self.metrics.inc_settlement_error(_service_of(message))
            return Settlement.LEFT_FOR_BUS
        logger.info(
            "%s: Message is scheduled to retry at UTC: %s (retry %d/%d)",
            correlation_id,
            not_before.isoformat(),
            decision.retries,
            self.max_retries,
        )
        self.metrics.inc_retried(_service_of(message))
        return Settlement.RESCHEDULED

    async def _dead_letter(
        self,
        bus: MessageBus,
        message: BusMessage,
        correlation_id: str,
        decision: RetryDecision,
        reason: str,
    ) -> Settlement:
        try:
            await bus.dead_letter(message, reason, decision.reason)
        except Exception as exc:
            logger.error("%s: Error while dead letter messages %s", correlation_id, exc)
            self.metrics.inc_settlement_error(_service_of(message))
            return Settlement.LEFT_FOR_BUS
        logger.info("%s: Dead lettered a message %s", correlation_id, _body_repr(message))
        self.metrics.inc_dead_lettered(_service_of(message), reason)
        return Settlement.DEAD_LETTERED
