"""Tests for settings loading from config.ini, environment and secrets volume."""

import pytest

from service_callback.config_loader import load_settings, read_volume_secret
from service_callback.exceptions import ConfigurationError

REQUIRED_ENV = {
    "SCB_CONNECTION_STRING": "Endpoint=sb://ccpay.servicebus.windows.net/;SharedAccessKey=abc",
    "SCB_TOPIC_NAME": "ccpay-service-callback-topic",
    "SCB_SUBSCRIPTION_NAME": "serviceCallbackPremiumSubscription",
    "SCB_S2S_URL": "http://s2s.local",
    "SCB_S2S_SECRET": "JBSWY3DPEHPK3PXP",
    "SCB_MICROSERVICE": "payment_app",
}


def test_environment_only_uses_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "missing.ini"), environ=REQUIRED_ENV)

    assert settings.topic_name == "ccpay-service-callback-topic"
    assert settings.process_messages_count == 10
    assert settings.delay_minutes == 20
    assert settings.max_wait_seconds == 5.0
    assert settings.http_timeout_seconds == 30.0
    assert settings.extended_logging is False
    assert settings.dead_letter_email.enabled is False


def test_ini_values_take_precedence_over_environment(tmp_path):
    config_file = tmp_path / "config.ini"
    config_file.write_text("""
[servicebus]
connection_string = memory://
topic_name = ini-topic
subscription_name = ini-sub
process_messages_count = 3
delay_message_minutes = 1

[s2s]
url = http://ini-s2s
microservice = ini_app

[logging]
extra_service_logging = true

[dead_letter_email]
enabled = yes
host = smtp.example.com
port = 587
from = callbacks@example.com
to = ops@example.com
subject = Dead letter
""")

    settings = load_settings(str(config_file), environ=REQUIRED_ENV)

    assert settings.connection_string == "memory://"
    assert settings.topic_name == "ini-topic"
    assert settings.s2s_url == "http://ini-s2s"
    assert settings.s2s_secret == "JBSWY3DPEHPK3PXP"
    assert settings.process_messages_count == 3
    assert settings.delay_minutes == 1
    assert settings.extended_logging is True
    email = settings.dead_letter_email
    assert email.enabled is True
    assert email.smtp.port == 587
    assert email.is_complete is True


def test_config_path_from_environment(tmp_path):
    config_file = tmp_path / "alt.ini"
    config_file.write_text("[servicebus]\ntopic_name = from-file\n")
    env = dict(REQUIRED_ENV, SCB_CONFIG=str(config_file))

    assert load_settings(environ=env).topic_name == "from-file"


def test_secret_volume_overrides_configured_secret(tmp_path):
    secret = tmp_path / "ccpay" / "payment-s2s-secret"
    secret.parent.mkdir()
    secret.write_text("VOLUMESECRET\n")
    env = dict(REQUIRED_ENV, SCB_SECRETS_VOLUME=str(tmp_path))

    settings = load_settings(str(tmp_path / "none.ini"), environ=env)

    assert settings.s2s_secret == "VOLUMESECRET"


def test_read_volume_secret_missing():
    assert read_volume_secret(None, "key") is None
    assert read_volume_secret("/nonexistent", "ccpay/x") is None


@pytest.mark.parametrize("missing", sorted(REQUIRED_ENV))
def test_missing_required_setting_raises(tmp_path, missing):
    env = {k: v for k, v in REQUIRED_ENV.items() if k != missing}

    with pytest.raises(ConfigurationError, match=missing):
        load_settings(str(tmp_path / "none.ini"), environ=env)


def test_invalid_integer_raises(tmp_path):
    env = dict(REQUIRED_ENV, SCB_PROCESS_MESSAGES_COUNT="ten")

    with pytest.raises(ConfigurationError, match="process_messages_count"):
        load_settings(str(tmp_path / "none.ini"), environ=env)


def test_masked_hides_secrets(tmp_path):
    env = dict(REQUIRED_ENV, SCB_SMTP_PASSWORD="hunter2")

    masked = load_settings(str(tmp_path / "none.ini"), environ=env).masked()

    assert masked["connection_string"] == "***"
    assert masked["s2s_secret"] == "***"
    assert masked["dead_letter_email.password"] == "***"
    assert masked["microservice"] == "payment_app"
