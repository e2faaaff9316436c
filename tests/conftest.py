import json
import logging

import pytest

from receptionist.config.settings import RelaySettings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep relay variables from the developer's shell out of the tests"""
    for name, field in RelaySettings.model_fields.items():
        monkeypatch.delenv(field.validation_alias, raising=False)
        monkeypatch.delenv(name.upper(), raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeUpstream:
    """Stands in for RealtimeConnection; records what a session sends."""

    def __init__(self, ready=False):
        self.ready = ready
        self.sent = []
        self.subscribers = []
        self.started = 0
        self.closed = 0

    async def subscribe(self, subscriber):
        self.subscribers.append(subscriber)
        return self.ready

    async def unsubscribe(self, subscriber):
        if subscriber in self.subscribers:
            self.subscribers.remove(subscriber)

    def send(self, message):
        if not self.ready:
            return False
        payload = message if isinstance(message, str) else message.to_json()
        self.sent.append(json.loads(payload))
        return True

    def start(self):
        self.started += 1

    async def close(self):
        self.closed += 1
        self.ready = False

    @property
    def sent_types(self):
        return [m["type"] for m in self.sent]


class FakeLink:
    """Stands in for TelephonyLink; records outbound media frames."""

    def __init__(self):
        self.frames = []

    def send_media(self, stream_sid, payload):
        if not stream_sid:
            return False
        self.frames.append((stream_sid, payload))
        return True


@pytest.fixture
def settings():
    return RelaySettings(
        openai_api_key="test-api-key",
        public_base_url="https://relay.example.com/",
        keepalive_interval=0.01,
        greeting_retry_delay=60,
        transfer_number="+15550001111",
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def ready_upstream():
    return FakeUpstream(ready=True)


@pytest.fixture
def link():
    return FakeLink()


@pytest.fixture
def upstream_factory():
    """Callable building fresh fake upstreams, for coordinator connection factories."""
    created = []

    def factory(name, ready=True):
        fake = FakeUpstream(ready=ready)
        created.append(fake)
        return fake

    factory.created = created
    return factory
