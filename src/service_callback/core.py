# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Batch orchestration for the service callback dispatcher.

This module provides the CallbackService class, the entry point invoked by
the host (a timer, a cron job, the ``service-callback run`` command). One
call to ``run_once`` is one pass:

- open a bus session and receive up to ``process_messages_count`` messages
- for each message, in delivery order: validate, lease an S2S token, PUT
  the body to the callback URL, then retry or dead-letter on failure
- settle every message at most once
- close the HTTP and bus sessions on every exit path

Example:
    Running one pass::

        from service_callback.config_loader import load_settings
        from service_callback.core import CallbackService

        service = CallbackService(load_settings("config.ini"))
        summary = await service.run_once()
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from .bus import MessageBus, create_bus
from .config_loader import ServiceSettings
from .dispatcher import CallbackDispatcher
from .exceptions import AuthError, MessageValidationError
from .logger import get_logger
from .models import (
    BatchSummary,
    BusMessage,
    CallbackRequest,
    DeliveryOutcome,
    RecoverableFailure,
    Settlement,
    Success,
    generate_correlation_id,
)
from .notifier import DeadLetterNotifier
from .prometheus import CallbackMetrics
from .retry import RetryCoordinator
from .token_provider import TokenProvider
from .validator import normalise, validate

NO_MESSAGES_LOG = "No messages received from topic subscription"


def _assign_correlation_id(message: Any) -> tuple[Any, str]:
    """Return the message carrying a correlation id, and that id."""
    try:
        correlation_id = message.correlation_id
    except Exception:
        correlation_id = None
    if correlation_id in (None, ""):
        correlation_id = generate_correlation_id()
    correlation_id = str(correlation_id)
    if isinstance(message, BusMessage):
        message = message.with_correlation_id(correlation_id)
    return message, correlation_id


class CallbackService:
    """Drain one batch of callback messages per ``run_once`` call.

    Collaborators default to the production implementations built from
    ``settings``; tests and alternative hosts inject their own.

    Attributes:
        settings: Loaded service settings.
        token_provider: S2S token lease client.
        dispatcher: Callback PUT client.
        notifier: Dead-letter email notifier.
        coordinator: Retry/dead-letter decision maker.
        metrics: Prometheus metrics collector.
    """

    def __init__(
        self,
        settings: ServiceSettings,
        *,
        bus_factory: Callable[[], MessageBus] | None = None,
        session_factory: Callable[[], aiohttp.ClientSession] | None = None,
        token_provider: TokenProvider | None = None,
        dispatcher: CallbackDispatcher | None = None,
        notifier: DeadLetterNotifier | None = None,
        metrics: CallbackMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
        logger=None,
    ):
        self.settings = settings
        self.logger = logger or get_logger("CallbackService")
        self.metrics = metrics or CallbackMetrics()
        self.token_provider = token_provider or TokenProvider(
            settings.s2s_url, settings.s2s_secret, settings.microservice
        )
        self.dispatcher = dispatcher or CallbackDispatcher(extended_logging=settings.extended_logging)
        self.notifier = notifier or DeadLetterNotifier(settings.dead_letter_email)
        self.coordinator = RetryCoordinator(
            self.notifier,
            delay_minutes=settings.delay_minutes,
            metrics=self.metrics,
            clock=clock,
        )
        self._bus_factory = bus_factory or (lambda: create_bus(settings))
        self._session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout_seconds)
        )

    async def run_once(self) -> BatchSummary:
        """Receive and process one batch of messages.

        Returns:
            Counters of the settlements reached in this pass.
        """
        summary = BatchSummary()
        bus = self._bus_factory()
        try:
            messages = await bus.receive_batch(self.settings.process_messages_count)
            summary.received = len(messages)
            self.metrics.set_batch_size(summary.received)
            if not messages:
                self.logger.info(NO_MESSAGES_LOG)
                return summary
            self.logger.debug("Received %d message(s)", len(messages))
            async with self._session_factory() as session:
                for message in messages:
                    summary.record(await self._process_message(bus, session, message))
        finally:
            await self._close_bus(bus)
        self.logger.info(
            "Batch processed: received=%d completed=%d rescheduled=%d dead_lettered=%d left_for_bus=%d",
            summary.received,
            summary.completed,
            summary.rescheduled,
            summary.dead_lettered,
            summary.left_for_bus,
        )
        return summary

    async def _close_bus(self, bus: MessageBus) -> None:
        try:
            await bus.close()
        except Exception:
            self.logger.exception("Failed to close bus session")

    async def _process_message(self, bus: MessageBus, session: aiohttp.ClientSession, message: Any) -> Settlement:
        """Run one message through the pipeline and settle it at most once."""
        correlation_id = None
        try:
            message, correlation_id = _assign_correlation_id(message)
            settlement = await self._deliver(bus, session, message, correlation_id)
        except Exception:
            # The coordinator never raises; anything here is a bug upstream of it.
            self.logger.exception("%s: Unhandled error while processing message", correlation_id)
            return Settlement.LEFT_FOR_BUS
        if settlement is Settlement.PENDING:
            settlement = await self._complete(bus, message, correlation_id)
        return settlement

    async def _deliver(
        self, bus: MessageBus, session: aiohttp.ClientSession, message: Any, correlation_id: str
    ) -> Settlement:
        request: CallbackRequest | None = None
        try:
            if not validate(message, correlation_id):
                return await self.coordinator.dead_letter_invalid(
                    bus, message, correlation_id, "message failed validation"
                )
            request = normalise(message)
            self.logger.info("%s: Processing message from service %s", correlation_id, request.service_name)
            outcome = await self._attempt(session, message, request, correlation_id)
        except MessageValidationError as exc:
            return await self.coordinator.dead_letter_invalid(bus, message, correlation_id, str(exc))
        except Exception as exc:
            callback_url = request.callback_url if request is not None else None
            self.logger.exception("%s: Error response received from %s", correlation_id, callback_url)
            outcome = RecoverableFailure(f"Unexpected error: {exc!r}")

        if isinstance(outcome, Success):
            self.metrics.inc_delivered(request.service_name if request else None)
            return Settlement.PENDING
        return await self.coordinator.handle_failure(bus, message, correlation_id, outcome, request)

    async def _attempt(
        self,
        session: aiohttp.ClientSession,
        message: BusMessage,
        request: CallbackRequest,
        correlation_id: str,
    ) -> DeliveryOutcome:
        try:
            credential = await self.token_provider.obtain_token(session, correlation_id)
        except AuthError as exc:
            self.logger.warning("%s: Error in fetching S2S token message %s", correlation_id, exc)
            return RecoverableFailure(str(exc))
        return await self.dispatcher.dispatch(
            session, request.callback_url, message.body, credential, correlation_id
        )

    async def _complete(self, bus: MessageBus, message: Any, correlation_id: str) -> Settlement:
        try:
            await bus.complete(message)
        except Exception as exc:
            self.logger.error("%s: Error while completing message %s", correlation_id, exc)
            self.metrics.inc_settlement_error(None)
            return Settlement.LEFT_FOR_BUS
        return Settlement.COMPLETED
