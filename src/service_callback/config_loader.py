# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the service callback dispatcher.

Settings come from an INI file with ``SCB_*`` environment variables as
fallbacks. Secrets may also be read from a mounted properties volume, where
each secret is a file named after its key (``<volume>/<vault>/<name>``).

Example:
    Configuration file format (config.ini)::

        [servicebus]
        connection_string = Endpoint=sb://ccpay.servicebus.windows.net/;...
        topic_name = ccpay-service-callback-topic
        subscription_name = serviceCallbackPremiumSubscription
        process_messages_count = 10
        delay_message_minutes = 20

        [s2s]
        url = http://rpe-service-auth-provider
        microservice = payment_app

        [secrets]
        volume_path = /mnt/secrets
        s2s_secret_key = ccpay/payment-s2s-secret

        [logging]
        extra_service_logging = false

        [dead_letter_email]
        enabled = true
        host = smtp.example.com
        port = 587
        secure = false
        from = callbacks@example.com
        to = ops@example.com
        subject = Service callback dead-lettered

    Loading it::

        settings = load_settings("/etc/service-callback/config.ini")
"""

from __future__ import annotations

import configparser
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigurationError
from .logger import get_logger

logger = get_logger("ConfigLoader")

ENV_PREFIX = "SCB_"
DEFAULT_CONFIG_PATH = "config.ini"
DEFAULT_PROCESS_MESSAGES_COUNT = 10
DEFAULT_DELAY_MINUTES = 20
DEFAULT_MAX_WAIT_SECONDS = 5.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class SmtpConfig:
    """SMTP transport settings for the dead-letter email.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        secure: Implicit TLS on connect (typically port 465).
        tls_protocol: Minimum TLS version name such as ``"TLSv1_2"``.
        user: Optional username for SMTP AUTH.
        password: Optional password for SMTP AUTH.
    """

    host: str | None = None
    port: int | None = None
    secure: bool = False
    tls_protocol: str | None = None
    user: str | None = None
    password: str | None = None

    @property
    def auth(self) -> dict[str, str] | None:
        if self.user and self.password:
            return {"user": self.user, "pass": self.password}
        return None


@dataclass
class DeadLetterEmailConfig:
    """Operator notification on terminal dead-letter."""

    enabled: bool = False
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    from_address: str | None = None
    to_address: str | None = None
    subject: str | None = None

    @property
    def is_complete(self) -> bool:
        """True when host, port, from, to and subject are all set."""
        return all(
            (self.smtp.host, self.smtp.port, self.from_address, self.to_address, self.subject)
        )


@dataclass
class ServiceSettings:
    """Everything a batch pass needs, read once at start-up."""

    connection_string: str
    topic_name: str
    subscription_name: str
    s2s_url: str
    s2s_secret: str
    microservice: str
    process_messages_count: int = DEFAULT_PROCESS_MESSAGES_COUNT
    delay_minutes: int = DEFAULT_DELAY_MINUTES
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    extended_logging: bool = False
    dead_letter_email: DeadLetterEmailConfig = field(default_factory=DeadLetterEmailConfig)

    def masked(self) -> dict[str, object]:
        """Flat view of the settings with secrets replaced by ``***``."""
        email = self.dead_letter_email
        return {
            "connection_string": _mask(self.connection_string),
            "topic_name": self.topic_name,
            "subscription_name": self.subscription_name,
            "process_messages_count": self.process_messages_count,
            "delay_minutes": self.delay_minutes,
            "max_wait_seconds": self.max_wait_seconds,
            "http_timeout_seconds": self.http_timeout_seconds,
            "s2s_url": self.s2s_url,
            "s2s_secret": _mask(self.s2s_secret),
            "microservice": self.microservice,
            "extended_logging": self.extended_logging,
            "dead_letter_email.enabled": email.enabled,
            "dead_letter_email.host": email.smtp.host,
            "dead_letter_email.port": email.smtp.port,
            "dead_letter_email.secure": email.smtp.secure,
            "dead_letter_email.tls_protocol": email.smtp.tls_protocol,
            "dead_letter_email.user": email.smtp.user,
            "dead_letter_email.password": _mask(email.smtp.password),
            "dead_letter_email.from": email.from_address,
            "dead_letter_email.to": email.to_address,
            "dead_letter_email.subject": email.subject,
        }


def _mask(value: str | None) -> str | None:
    return "***" if value else value


def read_volume_secret(volume_path: str | None, key: str | None) -> str | None:
    """Read one secret file from a mounted properties volume.

    Returns None when no volume is configured or the file is absent.
    """
    if not volume_path or not key:
        return None
    secret_file = Path(volume_path) / key
    if not secret_file.is_file():
        logger.debug(f"Secret {key} not found under {volume_path}")
        return None
    return secret_file.read_text(encoding="utf-8").strip()


def load_settings(
    config_path: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServiceSettings:
    """Load settings from INI file, environment and secrets volume.

    Precedence per key: INI value, then ``SCB_*`` environment variable, then
    default. The S2S secret is looked up in the secrets volume before both.

    Args:
        config_path: INI file path; defaults to ``$SCB_CONFIG`` or config.ini.
            A missing file is not an error (environment-only deployments).
        environ: Environment mapping, ``os.environ`` when omitted.

    Raises:
        ConfigurationError: If a mandatory setting is missing or malformed.
    """
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_PATH))
    parser = configparser.ConfigParser(interpolation=None)
    if path.exists():
        parser.read(path)
    else:
        logger.info(f"Config file {path} not found, using environment only")

    def get(section: str, option: str, env_key: str, default: str | None = None) -> str | None:
        if parser.has_option(section, option):
            value = parser.get(section, option).strip()
            return value or default
        return env.get(f"{ENV_PREFIX}{env_key}", default)

    def require(section: str, option: str, env_key: str) -> str:
        value = get(section, option, env_key)
        if not value:
            raise ConfigurationError(
                f"Missing setting [{section}] {option} (or {ENV_PREFIX}{env_key})"
            )
        return value

    def get_int(section: str, option: str, env_key: str, default: int | None) -> int | None:
        value = get(section, option, env_key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid integer for [{section}] {option}: {value!r}") from exc

    def get_float(section: str, option: str, env_key: str, default: float) -> float:
        value = get(section, option, env_key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid number for [{section}] {option}: {value!r}") from exc

    def get_bool(section: str, option: str, env_key: str, default: bool = False) -> bool:
        value = get(section, option, env_key)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized in _TRUE:
            return True
        if normalized in _FALSE:
            return False
        logger.warning(f"Invalid boolean for [{section}] {option}: {value!r}, using {default}")
        return default

    s2s_secret = read_volume_secret(
        get("secrets", "volume_path", "SECRETS_VOLUME"),
        get("secrets", "s2s_secret_key", "S2S_SECRET_KEY", "ccpay/payment-s2s-secret"),
    ) or require("s2s", "secret", "S2S_SECRET")

    email = DeadLetterEmailConfig(
        enabled=get_bool("dead_letter_email", "enabled", "EMAIL_ENABLED"),
        smtp=SmtpConfig(
            host=get("dead_letter_email", "host", "SMTP_HOST"),
            port=get_int("dead_letter_email", "port", "SMTP_PORT", None),
            secure=get_bool("dead_letter_email", "secure", "SMTP_SECURE"),
            tls_protocol=get("dead_letter_email", "tls_protocol", "SMTP_TLS_PROTOCOL"),
            user=get("dead_letter_email", "user", "SMTP_USER"),
            password=get("dead_letter_email", "password", "SMTP_PASSWORD"),
        ),
        from_address=get("dead_letter_email", "from", "EMAIL_FROM"),
        to_address=get("dead_letter_email", "to", "EMAIL_TO"),
        subject=get("dead_letter_email", "subject", "EMAIL_SUBJECT"),
    )

    settings = ServiceSettings(
        connection_string=require("servicebus", "connection_string", "CONNECTION_STRING"),
        topic_name=require("servicebus", "topic_name", "TOPIC_NAME"),
        subscription_name=require("servicebus", "subscription_name", "SUBSCRIPTION_NAME"),
        s2s_url=require("s2s", "url", "S2S_URL"),
        s2s_secret=s2s_secret,
        microservice=require("s2s", "microservice", "MICROSERVICE"),
        process_messages_count=max(
            1,
            get_int("servicebus", "process_messages_count", "PROCESS_MESSAGES_COUNT",
                    DEFAULT_PROCESS_MESSAGES_COUNT),
        ),
        delay_minutes=max(
            0,
            get_int("servicebus", "delay_message_minutes", "DELAY_MESSAGE_MINUTES", DEFAULT_DELAY_MINUTES),
        ),
        max_wait_seconds=get_float("servicebus", "max_wait_seconds", "MAX_WAIT_SECONDS", DEFAULT_MAX_WAIT_SECONDS),
        http_timeout_seconds=get_float("http", "timeout_seconds", "HTTP_TIMEOUT_SECONDS",
                                       DEFAULT_HTTP_TIMEOUT_SECONDS),
        extended_logging=get_bool("logging", "extra_service_logging", "EXTRA_SERVICE_LOGGING"),
        dead_letter_email=email,
    )
    if email.enabled and not email.is_complete:
        logger.warning("Dead-letter email is enabled but host, port, from, to or subject is missing")
    return settings
