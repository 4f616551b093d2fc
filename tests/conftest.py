import pytest

from agent_resilience.core.config import Settings
from agent_resilience.pipeline.notifier import RecordingNotifier


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    # Zero delays keep retry tests instant
    return Settings(
        _env_file=None,
        retry_max_retries=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        breaker_failure_threshold=5,
        breaker_reset_timeout=30.0,
        breaker_half_open_max_calls=3,
        dedupe_ttl=5.0,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()
