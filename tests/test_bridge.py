"""Tests for the protocol bridge: single-flight connect, timeouts and fallback."""

import asyncio
import json
import time
from contextlib import asynccontextmanager

import pytest
from mcp.types import CallToolResult, TextContent

from supportdesk import bridge as bridge_module
from supportdesk.bridge import ConnectionState, ProtocolBridge, RemoteResult, _tool_payload
from supportdesk.config import BridgeConfig, LLMConfig, SupportDeskConfig
from supportdesk.pipeline import SupportPipeline
from tests.conftest import read_logs

METRICS = {"total": 0, "deflected": 0, "deflectionRate": 0, "avgConfidence": 0, "maxConfidence": 0, "byIntent": {}}


class FakeSession:
    """Stands in for an MCP ClientSession."""

    def __init__(self, payload=None):
        self.payload = payload if payload is not None else METRICS
        self.calls = []
        self.fail = None
        self.is_error = False
        self.delay = 0

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        if self.is_error:
            return CallToolResult(content=[TextContent(type="text", text="tool exploded")], isError=True)
        return CallToolResult(content=[TextContent(type="text", text=json.dumps(self.payload))])


class FakeProvider:
    """Connector factory that records how often it is opened and closed."""

    def __init__(self, gate=None, error=None):
        self.gate = gate
        self.error = error
        self.sessions = []
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def connect(self):
        self.opened += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        session = FakeSession()
        self.sessions.append(session)
        try:
            yield session
        finally:
            self.closed += 1


def make_bridge(provider, **config):
    settings = {"connect_timeout": 2.0, "call_timeout": 2.0, **config}
    return ProtocolBridge(BridgeConfig(**settings), connector=provider.connect)


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_connect():
    gate = asyncio.Event()
    provider = FakeProvider(gate=gate)
    bridge = make_bridge(provider)

    first = asyncio.create_task(bridge.get_metrics())
    second = asyncio.create_task(bridge.get_metrics())
    await asyncio.sleep(0.01)
    assert bridge.state is ConnectionState.CONNECTING

    gate.set()
    results = await asyncio.gather(first, second)

    assert all(result.available for result in results)
    assert results[0].data == METRICS
    assert bridge.connect_attempts == 1
    assert provider.opened == 1
    assert bridge.state is ConnectionState.CONNECTED
    await bridge.close()
    assert provider.closed == 1
    assert bridge.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connected_session_is_reused():
    provider = FakeProvider()
    bridge = make_bridge(provider)
    await bridge.ask_support("  vpn down  ")
    await bridge.search_faq("vpn", 2)

    assert provider.opened == 1
    assert provider.sessions[0].calls == [
        ("ask_support", {"question": "vpn down", "top_k": 3}),
        ("search_faq", {"query": "vpn", "top_k": 2}),
    ]
    await bridge.close()


@pytest.mark.asyncio
async def test_connect_timeout_reports_unavailable():
    provider = FakeProvider(gate=asyncio.Event())
    bridge = make_bridge(provider, connect_timeout=0.05)

    result = await bridge.classify_intent("vpn")

    assert result.available is False
    assert "timeout" in result.reason
    assert bridge.state is ConnectionState.DISCONNECTED

    # a later call starts a fresh attempt
    await bridge.classify_intent("vpn")
    assert bridge.connect_attempts == 2


@pytest.mark.asyncio
async def test_connect_timeout_does_not_wait_for_slow_unwind(monkeypatch):
    monkeypatch.setattr(bridge_module, "ABORT_WAIT", 0.05)

    @asynccontextmanager
    async def stubborn_connect():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            await asyncio.sleep(2)
            raise
        yield FakeSession()

    bridge = ProtocolBridge(BridgeConfig(connect_timeout=0.5, call_timeout=2.0), connector=stubborn_connect)
    started = time.monotonic()
    result = await bridge.get_metrics()
    elapsed = time.monotonic() - started

    assert result.available is False
    # bounded by the connect timeout plus the short abort wait, not twice the connect timeout
    assert elapsed < 0.9


@pytest.mark.asyncio
async def test_connect_failure_reports_unavailable():
    bridge = make_bridge(FakeProvider(error=OSError("spawn failed")))
    result = await bridge.get_metrics()
    assert result.available is False
    assert "spawn failed" in result.reason
    assert bridge.state is ConnectionState.DISCONNECTED
    assert await bridge.is_available() is False


@pytest.mark.asyncio
async def test_transport_failure_resets_connection():
    provider = FakeProvider()
    bridge = make_bridge(provider)
    assert (await bridge.get_metrics()).available

    provider.sessions[0].fail = ConnectionError("broken pipe")
    result = await bridge.get_metrics()

    assert result.available is False
    assert "broken pipe" in result.reason
    assert bridge.state is ConnectionState.DISCONNECTED
    assert provider.closed == 1

    assert (await bridge.get_metrics()).available
    assert bridge.connect_attempts == 2
    await bridge.close()


@pytest.mark.asyncio
async def test_tool_error_resets_connection():
    provider = FakeProvider()
    bridge = make_bridge(provider)
    await bridge.get_metrics()
    provider.sessions[0].is_error = True

    result = await bridge.get_metrics()

    assert result.available is False
    assert "tool exploded" in result.reason
    assert bridge.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_call_timeout_reports_unavailable():
    provider = FakeProvider()
    bridge = make_bridge(provider, call_timeout=0.05)
    await bridge.get_metrics()
    provider.sessions[0].delay = 1

    result = await bridge.get_metrics()

    assert result.available is False
    assert "timed out" in result.reason
    assert bridge.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_fallback_after_transport_failure(data_dir):
    provider = FakeProvider()
    bridge = make_bridge(provider)
    await bridge.get_metrics()
    provider.sessions[0].fail = ConnectionError("broken pipe")

    result = await bridge.ask_support("vpn is not working")
    assert result == RemoteResult.unavailable(result.reason)

    pipeline = SupportPipeline(SupportDeskConfig(data_dir=data_dir, llm=LLMConfig(api_key=None)))
    assert pipeline.composer.enhancer is None
    response = await pipeline.ask("vpn is not working")
    assert response.needs_human is False
    [record] = read_logs(data_dir)
    assert record["usedGenerativeEnhancer"] is False
    assert "channel" not in record


def test_wrapped_structured_output_is_unwrapped():
    wrapped = CallToolResult(
        content=[TextContent(type="text", text=json.dumps(METRICS))],
        structuredContent={"result": METRICS},
    )
    assert _tool_payload(wrapped) == METRICS


def test_object_structured_output_is_used_as_is():
    plain = CallToolResult(content=[], structuredContent=METRICS)
    assert _tool_payload(plain) == METRICS


def test_text_content_used_without_structured_output():
    assert _tool_payload(CallToolResult(content=[TextContent(type="text", text=json.dumps(METRICS))])) == METRICS
