"""Queue-driven service callback dispatcher.

This package drains callback requests from a topic subscription and PUTs
each message body to the callback URL the producing service asked for:

- S2S token lease with a time-based one-time password
- Bounded retry with delayed redelivery of message clones
- Dead-lettering of invalid and exhausted messages
- Optional operator email on terminal dead-letter
- Prometheus metrics for every settlement

Example:
    Running one pass from code::

        from service_callback.config_loader import load_settings
        from service_callback.core import CallbackService

        service = CallbackService(load_settings("config.ini"))
        summary = await service.run_once()

Authors:
    Softwell S.r.l.
"""
