# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the callback pipeline.

Every error carries a short ``code`` used in log lines and as the dead-letter
reason. None of them escape the per-message boundary of a batch pass.
"""


class CallbackServiceError(RuntimeError):
    """Base class for all dispatcher errors."""

    code = "callback_service_error"

    def __init__(self, message: str, *, correlation_id: str | None = None):
        super().__init__(message)
        self.correlation_id = correlation_id


class ConfigurationError(CallbackServiceError):
    """Raised when mandatory settings are missing or malformed."""

    code = "configuration_error"


class MessageValidationError(CallbackServiceError):
    """Raised when a message lacks the shape needed to attempt delivery."""

    code = "InvalidMessage"


class AuthError(CallbackServiceError):
    """Raised when the S2S token exchange fails."""

    code = "auth_error"


class DeliveryError(CallbackServiceError):
    """Raised when the callback endpoint cannot be reached or rejects the call."""

    code = "delivery_error"

    def __init__(self, message: str, *, status: int | None = None, correlation_id: str | None = None):
        super().__init__(message, correlation_id=correlation_id)
        self.status = status


class SettlementError(CallbackServiceError):
    """Raised by bus adapters when complete, dead-letter or scheduling fails."""

    code = "settlement_error"


class NotificationError(CallbackServiceError):
    """Raised when the dead-letter email cannot be sent."""

    code = "notification_error"
