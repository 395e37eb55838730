import pytest

from phone_otp import InMemoryStore, OtpConfig, OtpEventEmitter, OtpService, OTP_REQUESTED


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SequenceGenerator:
    """Returns codes from a fixed list, cycling when exhausted."""

    def __init__(self, *codes: str):
        self.codes = list(codes) or ["123456"]
        self.calls = 0

    def generate(self) -> str:
        code = self.codes[self.calls % len(self.codes)]
        self.calls += 1
        return code


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def config():
    return OtpConfig()


@pytest.fixture
def generator():
    return SequenceGenerator("123456", "654321", "111111")


@pytest.fixture
def sent():
    """Collects otp.requested payloads."""
    return []


@pytest.fixture
def service(store, config, generator, sent):
    events = OtpEventEmitter()
    events.on(OTP_REQUESTED, sent.append)
    return OtpService(store, config, generator=generator, events=events)
