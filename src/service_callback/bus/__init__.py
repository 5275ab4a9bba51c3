# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Message bus collaborators.

The Azure adapter is imported on demand by ``create_bus`` so the package
works without the ``azure`` extra installed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import MessageBus
from .memory import InMemoryBus

if TYPE_CHECKING:
    from ..config_loader import ServiceSettings

MEMORY_SCHEME = "memory://"


def create_bus(settings: ServiceSettings) -> MessageBus:
    """Open a bus session for one batch pass.

    A connection string of ``memory://`` yields an empty ``InMemoryBus``,
    which is useful for dry runs of the command line host.
    """
    if settings.connection_string.startswith(MEMORY_SCHEME):
        return InMemoryBus()
    from .azure_servicebus import AzureServiceBus

    return AzureServiceBus(
        settings.connection_string,
        settings.topic_name,
        settings.subscription_name,
        max_wait_time=settings.max_wait_seconds,
    )


__all__ = ["InMemoryBus", "MessageBus", "create_bus"]
