# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Data models shared by the callback pipeline.

Models:
    - BusMessage: immutable snapshot of a received bus item
    - CallbackRequest: canonical view of a valid message (pydantic)
    - Success / RecoverableFailure / Invalid: delivery outcomes
    - RetryDecision: next state chosen by the retry coordinator
    - Settlement: per-message settlement state for one pass
    - BatchSummary: counters returned by a batch pass
"""

from __future__ import annotations

import dataclasses
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_RETRIES = 5

CALLBACK_URL_KEYS = ("serviceCallbackUrl", "servicecallbackurl")
SERVICE_NAME_KEY = "serviceName"
RETRIES_KEY = "retries"


def generate_correlation_id() -> str:
    """Return a random 6-digit correlation id for messages that carry none."""
    return str(random.randint(100000, 999999))  # noqa: S311


def coerce_retries(value: Any) -> int:
    """Read a ``retries`` property leniently; missing or garbage values count as 0."""
    try:
        retries = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, retries)


@dataclass(frozen=True)
class BusMessage:
    """Snapshot of one received bus item.

    Attributes:
        body: Opaque payload, delivered verbatim to the callback.
        properties: Application properties set by the producer.
        correlation_id: Producer-assigned correlation id, if any.
        message_id: Bus-assigned identifier, if any.
        handle: Bus-native object used by the adapter to settle the item.
    """

    body: Any
    properties: Mapping[str, Any] | None = None
    correlation_id: str | None = None
    message_id: str | None = None
    handle: Any = field(default=None, compare=False, repr=False)

    @property
    def retries(self) -> int:
        return coerce_retries((self.properties or {}).get(RETRIES_KEY))

    def clone(self, **properties: Any) -> BusMessage:
        """Return a new unsettled copy with the given properties overridden.

        The clone drops the bus handle and message id: it becomes a new item
        once the bus accepts it.
        """
        merged = dict(self.properties or {})
        merged.update(properties)
        return dataclasses.replace(self, properties=merged, message_id=None, handle=None)

    def with_correlation_id(self, correlation_id: str) -> BusMessage:
        return dataclasses.replace(self, correlation_id=correlation_id)


class CallbackRequest(BaseModel):
    """Canonical view of a valid message's properties.

    Both spellings of the callback URL property are accepted; the rest of
    the pipeline only ever sees ``callback_url``.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    callback_url: Annotated[
        str,
        Field(
            min_length=1,
            validation_alias=AliasChoices(*CALLBACK_URL_KEYS),
            description="Target URL the message body is PUT to",
        ),
    ]
    service_name: Annotated[
        str,
        Field(default="", validation_alias=AliasChoices(SERVICE_NAME_KEY, "service_name")),
    ]
    retries: Annotated[int, Field(default=0, ge=0)]

    @field_validator("service_name", mode="before")
    @classmethod
    def blank_service_name(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("retries", mode="before")
    @classmethod
    def lenient_retries(cls, v: Any) -> int:
        return coerce_retries(v)


@dataclass(frozen=True)
class Success:
    response_body: Any = None
    kind: Literal["success"] = "success"


@dataclass(frozen=True)
class RecoverableFailure:
    reason: str
    kind: Literal["recoverable"] = "recoverable"


@dataclass(frozen=True)
class Invalid:
    reason: str
    kind: Literal["invalid"] = "invalid"


DeliveryOutcome = Success | RecoverableFailure | Invalid


class RetryAction(str, Enum):
    RETRY = "retry"
    DEAD_LETTER = "dead_letter"


@dataclass(frozen=True)
class RetryDecision:
    """Next state for a failed message.

    Attributes:
        action: Whether the message is retried or dead-lettered.
        retries: Retry count carried by the clone (unchanged on dead-letter).
        reason: Dead-letter reason or failure reason for logging.
    """

    action: RetryAction
    retries: int
    reason: str


class Settlement(str, Enum):
    """Settlement state of one bus item within a pass."""

    PENDING = "pending"
    COMPLETED = "completed"
    DEAD_LETTERED = "dead_lettered"
    RESCHEDULED = "rescheduled"
    LEFT_FOR_BUS = "left_for_bus"

    @property
    def is_terminal(self) -> bool:
        return self is not Settlement.PENDING


@dataclass
class BatchSummary:
    """Counters returned by one batch pass."""

    received: int = 0
    completed: int = 0
    dead_lettered: int = 0
    rescheduled: int = 0
    left_for_bus: int = 0

    def record(self, settlement: Settlement) -> None:
        match settlement:
            case Settlement.COMPLETED:
                self.completed += 1
            case Settlement.DEAD_LETTERED:
                self.dead_lettered += 1
            case Settlement.RESCHEDULED:
                self.rescheduled += 1
            case _:
                self.left_for_bus += 1

    def as_dict(self) -> dict[str, int]:
        return dataclasses.asdict(self)
