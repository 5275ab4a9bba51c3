# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the service callback dispatcher.

Handlers, level and format are configured once by the entry point with
``logging.basicConfig()``; modules only ask for named loggers.

Example:
    Typical usage in a module::

        from service_callback.logger import get_logger

        logger = get_logger("CallbackDispatcher")
        logger.info("%s: Message Sent Successfully to %s", correlation_id, url)
"""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "ServiceCallback") -> logging.Logger:
    """Retrieve a named logger instance.

    Args:
        name: The logger name. Defaults to "ServiceCallback".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str | None = None) -> None:
    """Install the root handler used by the command line host.

    Args:
        level: Level name such as ``"DEBUG"``; unknown names fall back to INFO.
    """
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )
