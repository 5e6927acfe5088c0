import asyncio
import json

import httpx
import pytest

from relay_core.backends.registry import ACTIVEPIECES_SPEC, GENERIC_APOLOGY, LINDY_SPEC
from relay_core.backends.webhook_client import WebhookAdapter
from relay_core.domain.exceptions import ConfigurationMissingError
from relay_core.domain.models import BackendConfig, BackendType
from relay_core.infrastructure.storage.json_store import InMemoryConfigStore


class SettingsStub:
    http_timeout = 1.0
    default_user_id = "anonymous"


def _store(backend_type=BackendType.ACTIVEPIECES, **kw) -> InMemoryConfigStore:
    store = InMemoryConfigStore()
    store.save(backend_type, BackendConfig(backend_type=backend_type, **kw))
    return store


def _adapter(spec, store, handler) -> WebhookAdapter:
    return WebhookAdapter(spec, store, SettingsStub(), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_dispatch_success_builds_request():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": "hello"})

    store = _store(webhook_url="https://hooks.example.com/flow", identifier="flow-1", api_key="k-123")
    adapter = _adapter(ACTIVEPIECES_SPEC, store, handler)
    res = await adapter.dispatch("hi", "chat-1")

    assert res.text == "hello"
    assert res.status == "success"
    assert captured["url"] == "https://hooks.example.com/flow"
    assert captured["headers"]["content-type"] == "application/json"
    assert captured["headers"]["authorization"] == "Bearer k-123"
    assert captured["body"] == {
        "text": "hi",
        "conversation_id": "chat-1",
        "user_id": "anonymous",
        "flow_id": "flow-1",
    }


@pytest.mark.asyncio
async def test_dispatch_lindy_uses_agent_id_and_omits_auth_without_key():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "from lindy"})

    store = _store(BackendType.LINDY, webhook_url="https://hooks.example.com/lindy", identifier="agent-9", api_key="")
    adapter = _adapter(LINDY_SPEC, store, handler)
    res = await adapter.dispatch("hi", "chat-2", user_id="u-7")

    assert res.text == "from lindy"
    assert "authorization" not in captured["headers"]
    assert captured["body"]["agent_id"] == "agent-9"
    assert captured["body"]["user_id"] == "u-7"
    assert "flow_id" not in captured["body"]


@pytest.mark.asyncio
async def test_dispatch_empty_payload_uses_default_text():
    store = _store(webhook_url="https://x")
    adapter = _adapter(ACTIVEPIECES_SPEC, store, lambda request: httpx.Response(200, json={}))
    res = await adapter.dispatch("hi", "c")
    assert res.text == "No response from flow"
    assert res.status == "success"

    lindy = _adapter(
        LINDY_SPEC,
        _store(BackendType.LINDY, webhook_url="https://x", identifier="a"),
        lambda request: httpx.Response(204),
    )
    res = await lindy.dispatch("hi", "c")
    assert res.text == "No response from agent"


@pytest.mark.asyncio
async def test_dispatch_http_500_resolves_to_apology():
    store = _store(webhook_url="https://x")
    adapter = _adapter(ACTIVEPIECES_SPEC, store, lambda request: httpx.Response(500, text="boom"))
    outcome = await adapter.send("hi", "c")
    assert outcome.kind == "transport_failed"
    assert outcome.status_code == 500
    assert outcome.status_text == "Internal Server Error"

    res = await adapter.dispatch("hi", "c")
    assert res.status == "error"
    assert res.text == GENERIC_APOLOGY
    assert "500" not in res.text


@pytest.mark.asyncio
async def test_dispatch_network_error_resolves_to_apology():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter = _adapter(ACTIVEPIECES_SPEC, _store(webhook_url="https://x"), handler)
    outcome = await adapter.send("hi", "c")
    assert outcome.kind == "network_failed"
    assert "connection refused" in outcome.detail

    res = await adapter.dispatch("hi", "c")
    assert res == type(res)(text=GENERIC_APOLOGY, status="error")


@pytest.mark.asyncio
async def test_dispatch_non_json_body_is_error():
    adapter = _adapter(
        ACTIVEPIECES_SPEC,
        _store(webhook_url="https://x"),
        lambda request: httpx.Response(200, text="<html>ok</html>"),
    )
    res = await adapter.dispatch("hi", "c")
    assert res.status == "error"


@pytest.mark.asyncio
async def test_missing_config_never_calls_network():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"text": "nope"})

    adapter = _adapter(ACTIVEPIECES_SPEC, InMemoryConfigStore(), handler)
    assert adapter.is_configured() is False
    outcome = await adapter.send("hi", "c")
    assert outcome.kind == "config_missing"
    with pytest.raises(ConfigurationMissingError) as exc:
        await adapter.dispatch("hi", "c")
    assert exc.value.message == ACTIVEPIECES_SPEC.config_missing_text

    empty_url = _adapter(ACTIVEPIECES_SPEC, _store(webhook_url=""), handler)
    assert (await empty_url.send("hi", "c")).kind == "config_missing"

    # Lindy 必须有 agent id
    lindy = _adapter(LINDY_SPEC, _store(BackendType.LINDY, webhook_url="https://x"), handler)
    assert lindy.is_configured() is False
    assert (await lindy.send("hi", "c")).kind == "config_missing"
    assert calls == []


@pytest.mark.asyncio
async def test_config_is_read_on_every_dispatch():
    urls = []

    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(str(request.url))
        return httpx.Response(200, json={"message": "ok"})

    store = _store(webhook_url="https://one.example.com/")
    adapter = _adapter(ACTIVEPIECES_SPEC, store, handler)
    await adapter.dispatch("a", "c")
    store.save(
        BackendType.ACTIVEPIECES,
        BackendConfig(backend_type=BackendType.ACTIVEPIECES, webhook_url="https://two.example.com/"),
    )
    await adapter.dispatch("b", "c")
    assert urls == ["https://one.example.com/", "https://two.example.com/"]


@pytest.mark.asyncio
async def test_dispatch_cancelled_before_response():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(10)
        return httpx.Response(200, json={"text": "late"})

    cancel = asyncio.Event()
    adapter = _adapter(ACTIVEPIECES_SPEC, _store(webhook_url="https://x"), handler)
    task = asyncio.ensure_future(adapter.send("hi", "c", cancel=cancel))
    await asyncio.sleep(0.01)
    cancel.set()
    outcome = await asyncio.wait_for(task, timeout=2)
    assert outcome.kind == "cancelled"

    res = adapter.render(outcome)
    assert res.status == "error"


def test_adapter_passes_timeout_to_client(monkeypatch):
    captured = {}

    class Resp:
        status_code = 200
        is_success = True
        reason_phrase = "OK"
        content = b'{"text": "ok"}'

        def json(self):
            return {"text": "ok"}

    class Client:
        def __init__(self, *a, **kw):
            captured.update(kw)

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, *a, **kw):
            return Resp()

    monkeypatch.setattr("httpx.AsyncClient", Client)
    adapter = WebhookAdapter(ACTIVEPIECES_SPEC, _store(webhook_url="https://x"), SettingsStub())
    res = asyncio.run(adapter.dispatch("hi", "c"))
    assert res.text == "ok"
    assert captured["timeout"] == 1.0
    assert captured["trust_env"] is False
    assert captured["follow_redirects"] is True


@pytest.mark.asyncio
async def test_dispatch_omits_absent_flow_id():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": "ok"})

    adapter = _adapter(ACTIVEPIECES_SPEC, _store(webhook_url="https://x"), handler)
    await adapter.dispatch("hi", "c")
    assert captured["body"] == {"text": "hi", "conversation_id": "c", "user_id": "anonymous"}


@pytest.mark.asyncio
async def test_dispatch_non_ascii_api_key_resolves_to_apology():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"text": "unreachable"})

    store = _store(webhook_url="https://x", api_key="kéy’")
    adapter = _adapter(ACTIVEPIECES_SPEC, store, handler)
    outcome = await adapter.send("hi", "c")
    assert outcome.kind == "network_failed"
    assert "UnicodeEncodeError" in outcome.detail

    res = await adapter.dispatch("hi", "c")
    assert res.text == GENERIC_APOLOGY
    assert res.status == "error"
    assert calls == []


@pytest.mark.asyncio
async def test_dispatch_follows_redirects():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.path == "/old":
            return httpx.Response(307, headers={"Location": "https://hooks.example.com/new"})
        return httpx.Response(200, json={"text": "moved ok"})

    adapter = _adapter(ACTIVEPIECES_SPEC, _store(webhook_url="https://hooks.example.com/old"), handler)
    res = await adapter.dispatch("hi", "c")
    assert res.text == "moved ok"
    assert res.status == "success"
    assert seen == ["https://hooks.example.com/old", "https://hooks.example.com/new"]
