"""Tests for RequestBridge response normalization, timeouts and retries."""

import asyncio
import json

import httpx
import pytest

from browserbridge.client import RequestBridge
from browserbridge.commands.router import CommandRouter
from browserbridge.core.config import RequestConfig
from browserbridge.core.types import Command, CommandDomain, Degraded, ErrorKind, Failed, Ok, ServerEndpoint

ENDPOINT = ServerEndpoint(host="127.0.0.1", port=3025, reachable=True)


def _descriptor(domain: str, action: str, *args: str):
    return CommandRouter(clock=lambda: 1.0).route(
        Command(domain=CommandDomain(domain), action=action, arguments=args)
    )


class _Recorder:
    """MockTransport handler that replays a list of responses or exceptions."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, type) and issubclass(outcome, Exception):
            raise outcome("boom", request=request)
        return outcome


def _bridge(handler, **config) -> RequestBridge:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RequestBridge(RequestConfig(retry_delay_sec=0.0, **config), http_client=client)


class TestNormalization:
    @pytest.mark.asyncio
    async def test_plain_json_is_ok(self):
        handler = _Recorder(httpx.Response(200, json={"message": "saved to /tmp/x.png"}))
        result = await _bridge(handler).execute(_descriptor("capture", "screenshot"), ENDPOINT)

        assert isinstance(result, Ok)
        assert result.payload == {"message": "saved to /tmp/x.png"}
        assert result.route == "capture-screenshot"
        assert result.label == "Browser Screenshot"

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://127.0.0.1:3025/capture-screenshot"
        assert json.loads(request.content) == {}

    @pytest.mark.asyncio
    async def test_list_payload(self):
        logs = [{"level": "error", "message": "boom"}]
        handler = _Recorder(httpx.Response(200, json=logs))
        result = await _bridge(handler).execute(_descriptor("capture", "logs"), ENDPOINT)

        assert isinstance(result, Ok)
        assert result.payload == logs
        assert handler.requests[0].method == "GET"
        assert handler.requests[0].content == b""

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_object(self):
        handler = _Recorder(httpx.Response(204))
        result = await _bridge(handler).execute(_descriptor("capture", "clear"), ENDPOINT)
        assert isinstance(result, Ok)
        assert result.payload == {}

    @pytest.mark.asyncio
    async def test_success_envelope_unwraps_data(self):
        handler = _Recorder(httpx.Response(200, json={"status": "success", "data": {"score": 0.9}}))
        result = await _bridge(handler).execute(_descriptor("audit", "seo"), ENDPOINT)
        assert isinstance(result, Ok)
        assert result.payload == {"score": 0.9}

    @pytest.mark.asyncio
    async def test_envelope_warnings_degrade(self):
        body = {"status": "success", "data": {"score": 0.5}, "warnings": ["lighthouse skipped 2 audits"]}
        handler = _Recorder(httpx.Response(200, json=body))
        result = await _bridge(handler).execute(_descriptor("audit", "performance"), ENDPOINT)

        assert isinstance(result, Degraded)
        assert result.ok is True
        assert result.payload == {"score": 0.5}
        assert result.warnings == ["lighthouse skipped 2 audits"]

    @pytest.mark.asyncio
    async def test_partial_without_warnings_uses_message(self):
        body = {"status": "partial", "message": "2 of 5 audits completed", "data": {}}
        handler = _Recorder(httpx.Response(200, json=body))
        result = await _bridge(handler).execute(_descriptor("audit", "all"), ENDPOINT)

        assert isinstance(result, Degraded)
        assert result.warnings == ["2 of 5 audits completed"]

    @pytest.mark.asyncio
    async def test_top_level_warnings_degrade(self):
        handler = _Recorder(httpx.Response(200, json={"score": 0.4, "warnings": ["x"]}))
        result = await _bridge(handler).execute(_descriptor("audit", "seo"), ENDPOINT)

        assert isinstance(result, Degraded)
        assert result.payload == {"score": 0.4, "warnings": ["x"]}
        assert result.warnings == ["x"]

    @pytest.mark.asyncio
    async def test_error_envelope_fails(self):
        body = {"status": "error", "error": "No active tab"}
        handler = _Recorder(httpx.Response(200, json=body))
        result = await _bridge(handler).execute(_descriptor("debug", "start"), ENDPOINT)

        assert isinstance(result, Failed)
        assert result.kind == ErrorKind.SERVER_ERROR
        assert "No active tab" in result.message

    @pytest.mark.asyncio
    async def test_http_error_carries_extension_hint(self):
        handler = _Recorder(httpx.Response(500, json={"error": "Chrome extension not connected"}))
        result = await _bridge(handler).execute(_descriptor("capture", "logs"), ENDPOINT)

        assert isinstance(result, Failed)
        assert result.kind == ErrorKind.SERVER_ERROR
        assert result.message == "Chrome extension not connected (status=500) [console-logs]"
        assert "BrowserTools extension is running in Chrome" in result.hint
        assert result.route == "console-logs"

    @pytest.mark.asyncio
    async def test_http_error_with_text_body(self):
        handler = _Recorder(httpx.Response(502, text="Bad Gateway"))
        result = await _bridge(handler).execute(_descriptor("capture", "network"), ENDPOINT)
        assert isinstance(result, Failed)
        assert result.message.startswith("Bad Gateway")

    @pytest.mark.asyncio
    async def test_unparseable_success_is_malformed(self):
        handler = _Recorder(httpx.Response(200, text="<html>not json</html>"))
        result = await _bridge(handler).execute(_descriptor("capture", "element"), ENDPOINT)

        assert isinstance(result, Failed)
        assert result.kind == ErrorKind.MALFORMED_RESPONSE


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_idempotent_get_retried_once(self):
        handler = _Recorder(httpx.ConnectError, httpx.Response(200, json=[]))
        bridge = _bridge(handler)
        result = await bridge.execute(_descriptor("capture", "errors"), ENDPOINT)

        assert isinstance(result, Ok)
        assert len(handler.requests) == 2
        assert bridge.retry_count == 1

    @pytest.mark.asyncio
    async def test_idempotent_get_fails_after_one_retry(self):
        handler = _Recorder(httpx.ConnectError)
        bridge = _bridge(handler)
        result = await bridge.execute(_descriptor("capture", "logs"), ENDPOINT)

        assert isinstance(result, Failed)
        assert result.kind == ErrorKind.TRANSPORT_ERROR
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_non_idempotent_post_not_retried(self):
        handler = _Recorder(httpx.ConnectError)
        bridge = _bridge(handler)
        result = await bridge.execute(_descriptor("capture", "clear"), ENDPOINT)

        assert isinstance(result, Failed)
        assert result.kind == ErrorKind.TRANSPORT_ERROR
        assert len(handler.requests) == 1
        assert bridge.retry_count == 0

    @pytest.mark.asyncio
    async def test_timeout_not_retried(self):
        handler = _Recorder(httpx.ReadTimeout)
        bridge = _bridge(handler)
        result = await bridge.execute(_descriptor("capture", "logs"), ENDPOINT)

        assert isinstance(result, Failed)
        assert result.kind == ErrorKind.REQUEST_TIMEOUT
        assert "timed out after 30s" in result.message
        assert len(handler.requests) == 1


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_domain_timeout_applied(self):
        handler = _Recorder(httpx.Response(200, json={}))
        await _bridge(handler).execute(_descriptor("audit", "accessibility"), ENDPOINT)
        assert handler.requests[0].extensions["timeout"]["read"] == 120.0

    @pytest.mark.asyncio
    async def test_descriptor_timeout_overrides_domain(self):
        handler = _Recorder(httpx.Response(200, json={}))
        descriptor = _descriptor("capture", "logs").model_copy(update={"timeout": 5.0})
        bridge = _bridge(handler)

        assert bridge.timeout_for(descriptor) == 5.0
        await bridge.execute(descriptor, ENDPOINT)
        assert handler.requests[0].extensions["timeout"]["read"] == 5.0


@pytest.mark.asyncio
async def test_cancellation_propagates_without_retry():
    in_flight = asyncio.Event()
    requests = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        in_flight.set()
        await asyncio.Event().wait()

    bridge = _bridge(handler)
    task = asyncio.create_task(bridge.execute(_descriptor("capture", "logs"), ENDPOINT))
    await in_flight.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(requests) == 1
    assert bridge.retry_count == 0
