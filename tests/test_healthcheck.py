"""Unit tests for newsroom/healthcheck.py -- no real API calls."""

import asyncio

from newsroom import healthcheck
from newsroom.healthcheck import run_health_check
from newsroom.providers.base import ProviderError

from tests.conftest import FakeAgentClient, result_msg, system_msg, text_msg


async def test_health_check_passes():
    client = FakeAgentClient([system_msg(), text_msg("OK"), result_msg("OK")])
    assert await run_health_check(client) == (True, "")

    [call] = client.calls
    assert call["max_turns"] == 1
    assert call["allowed_tools"] == frozenset()


async def test_health_check_unconfigured():
    client = FakeAgentClient([result_msg("OK")], is_configured=False)
    ok, err = await run_health_check(client)
    assert ok is False
    assert err == "API key is not configured"
    assert client.calls == []


async def test_health_check_provider_error():
    client = FakeAgentClient(ProviderError("fake", "403 Forbidden"))
    ok, err = await run_health_check(client)
    assert ok is False
    assert "403 Forbidden" in err


async def test_health_check_stream_fault():
    client = FakeAgentClient([system_msg(), {"type": "error", "error": "overloaded_error"}])
    ok, err = await run_health_check(client)
    assert ok is False
    assert "overloaded_error" in err


async def test_health_check_timeout(monkeypatch):
    monkeypatch.setattr(healthcheck, "_TIMEOUT_SEC", 0.01)
    client = FakeAgentClient([system_msg(), result_msg("OK")], delay=1.0)
    ok, err = await run_health_check(client)
    assert ok is False
    assert "timed out" in err


async def test_health_check_does_not_leak_tasks():
    client = FakeAgentClient([result_msg("OK")])
    before = len(asyncio.all_tasks())
    await run_health_check(client)
    assert len(asyncio.all_tasks()) == before
