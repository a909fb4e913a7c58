import pytest
from pydantic import ValidationError

from worker.config import Settings

ENV_VARS = [
    "WORKER_HOST",
    "WORKER_PORT",
    "WORKER_RPC_THREADS",
    "WORKER_POOL_SIZE",
    "WORKER_MAX_PENDING",
    "HEALTH_PORT",
    "TALKBACK_TIMEOUT",
    "BLUESKY_REFRESH_ON_EXPIRY",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = Settings()
    assert s.address == "[::]:50052"
    assert s.pool_size == 5
    assert s.max_pending == 0
    assert s.health_port is None
    assert s.talkback_timeout == 10.0
    assert s.bluesky_refresh_on_expiry is False


def test_environment_values(monkeypatch):
    monkeypatch.setenv("WORKER_HOST", "127.0.0.1")
    monkeypatch.setenv("WORKER_PORT", "6000")
    monkeypatch.setenv("WORKER_POOL_SIZE", "8")
    monkeypatch.setenv("WORKER_MAX_PENDING", "100")
    monkeypatch.setenv("HEALTH_PORT", "8080")
    monkeypatch.setenv("TALKBACK_TIMEOUT", "2.5")
    monkeypatch.setenv("BLUESKY_REFRESH_ON_EXPIRY", "yes")

    s = Settings()

    assert s.address == "127.0.0.1:6000"
    assert s.pool_size == 8
    assert s.max_pending == 100
    assert s.health_port == 8080
    assert s.talkback_timeout == 2.5
    assert s.bluesky_refresh_on_expiry is True


def test_empty_environment_values_are_ignored(monkeypatch):
    monkeypatch.setenv("WORKER_PORT", "")
    assert Settings().port == 50052


def test_keyword_arguments_win(monkeypatch):
    monkeypatch.setenv("WORKER_POOL_SIZE", "8")
    assert Settings(pool_size=2).pool_size == 2


@pytest.mark.parametrize("env,value", [("WORKER_POOL_SIZE", "0"), ("WORKER_MAX_PENDING", "-1"), ("WORKER_PORT", "abc")])
def test_invalid_values_raise(monkeypatch, env, value):
    monkeypatch.setenv(env, value)
    with pytest.raises(ValidationError):
        Settings()
