import pytest
from pydantic import ValidationError

from chat_relay.config import DEFAULT_MAX_HISTORY, Settings
from chat_relay.rate_limit import TokenBucket


def test_defaults():
    s = Settings(_env_file=None, HISTORY_DB_PATH="")
    assert s.MAX_HISTORY == 200
    assert s.HUB_CAPACITY == 256
    assert s.ALLOWED_ORIGINS == "*"


@pytest.mark.parametrize("raw", ["0", "-5", "abc", ""])
def test_invalid_max_history_falls_back_to_default(monkeypatch, raw):
    monkeypatch.setenv("MAX_HISTORY", raw)
    assert Settings().MAX_HISTORY == DEFAULT_MAX_HISTORY


def test_max_history_from_env(monkeypatch):
    monkeypatch.setenv("MAX_HISTORY", "25")
    assert Settings().MAX_HISTORY == 25


def test_hub_capacity_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(HUB_CAPACITY=0)


def test_token_bucket_disabled_by_default_rate():
    bucket = TokenBucket(0, 1)
    assert not bucket.enabled
    assert all(bucket.allow()[0] for _ in range(100))


def test_token_bucket_refills():
    now = [0.0]
    bucket = TokenBucket(1.0, 2, clock=lambda: now[0])
    assert bucket.allow()[0]
    assert bucket.allow()[0]
    assert not bucket.allow()[0]
    now[0] = 1.5
    assert bucket.allow()[0]
    assert not bucket.allow()[0]
