"""Tests for the Azure Service Bus adapter against a fake SDK client."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

pytest.importorskip("azure.servicebus")

from azure.servicebus.exceptions import ServiceBusError  # noqa: E402

from service_callback.bus import azure_servicebus  # noqa: E402
from service_callback.exceptions import SettlementError  # noqa: E402


class FakeReceiver:
    def __init__(self, messages):
        self.messages = messages
        self.completed = []
        self.dead_lettered = []
        self.closed = False
        self.fail_complete = False

    async def receive_messages(self, max_message_count, max_wait_time):
        self.receive_args = (max_message_count, max_wait_time)
        return self.messages[:max_message_count]

    async def complete_message(self, message):
        if self.fail_complete:
            raise ServiceBusError("lock lost")
        self.completed.append(message)

    async def dead_letter_message(self, message, reason=None, error_description=None):
        self.dead_lettered.append((message, reason, error_description))

    async def close(self):
        self.closed = True


class FakeSender:
    def __init__(self):
        self.scheduled = []
        self.closed = False
        self.fail = False

    async def schedule_messages(self, message, schedule_time):
        if self.fail:
            raise ServiceBusError("throttled")
        self.scheduled.append((message, schedule_time))

    async def close(self):
        self.closed = True


class FakeClient:
    def __init__(self, receiver):
        self.receiver = receiver
        self.sender = FakeSender()
        self.closed = False

    def get_subscription_receiver(self, topic_name, subscription_name, receive_mode):
        self.receiver_args = (topic_name, subscription_name, receive_mode)
        return self.receiver

    def get_topic_sender(self, topic_name):
        return self.sender

    async def close(self):
        self.closed = True


def received(body=b'{"amount": 3000000}', properties=None, correlation_id="1234"):
    return SimpleNamespace(
        body=iter([body]) if isinstance(body, bytes) else body,
        application_properties=properties,
        correlation_id=correlation_id,
        message_id="m-1",
    )


@pytest.fixture
def make_bus(monkeypatch):
    def factory(messages):
        client = FakeClient(FakeReceiver(messages))
        monkeypatch.setattr(
            azure_servicebus.ServiceBusClient,
            "from_connection_string",
            staticmethod(lambda connection_string: client),
        )
        bus = azure_servicebus.AzureServiceBus("Endpoint=sb://x/", "topic", "sub", max_wait_time=2.0)
        return bus, client

    return factory


@pytest.mark.asyncio
async def test_receive_converts_sdk_messages(make_bus):
    bus, client = make_bus(
        [received(properties={b"serviceCallbackUrl": b"http://cb", "retries": 2})]
    )

    (message,) = await bus.receive_batch(10)

    assert client.receiver.receive_args == (10, 2.0)
    assert message.body == '{"amount": 3000000}'
    assert message.properties == {"serviceCallbackUrl": "http://cb", "retries": 2}
    assert message.correlation_id == "1234"
    assert message.message_id == "m-1"


@pytest.mark.asyncio
async def test_missing_properties_stay_none(make_bus):
    bus, _ = make_bus([received(properties=None)])

    (message,) = await bus.receive_batch(1)

    assert message.properties is None


@pytest.mark.asyncio
async def test_schedule_then_complete_original(make_bus):
    bus, client = make_bus([received(properties={"retries": 0}, correlation_id="c9")])
    (original,) = await bus.receive_batch(1)
    when = datetime(2025, 1, 1, tzinfo=timezone.utc)

    await bus.schedule_redelivery(original, original.clone(retries=1), when)

    outgoing, scheduled_at = client.sender.scheduled[0]
    assert scheduled_at == when
    assert outgoing.application_properties == {"retries": 1}
    assert outgoing.correlation_id == "c9"
    assert client.receiver.completed == [original.handle]


@pytest.mark.asyncio
async def test_schedule_failure_leaves_original_unsettled(make_bus):
    bus, client = make_bus([received()])
    client.sender.fail = True
    (original,) = await bus.receive_batch(1)

    with pytest.raises(SettlementError, match="scheduling failed"):
        await bus.schedule_redelivery(original, original.clone(retries=1), datetime.now(timezone.utc))
    assert client.receiver.completed == []


@pytest.mark.asyncio
async def test_complete_and_dead_letter(make_bus):
    bus, client = make_bus([received(), received()])
    first, second = await bus.receive_batch(2)

    await bus.complete(first)
    await bus.dead_letter(second, "InvalidMessage", "No body received")
    client.receiver.fail_complete = True

    with pytest.raises(SettlementError):
        await bus.complete(second)
    assert client.receiver.dead_lettered == [(second.handle, "InvalidMessage", "No body received")]


@pytest.mark.asyncio
async def test_close_releases_everything(make_bus):
    bus, client = make_bus([received()])
    (original,) = await bus.receive_batch(1)
    await bus.schedule_redelivery(original, original.clone(retries=1), datetime.now(timezone.utc))

    await bus.close()

    assert client.sender.closed and client.receiver.closed and client.closed
