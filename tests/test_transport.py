import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from prober.workflows.transport import AiohttpTransport, TransportError, TransportResult


def _app(seen_agents):
    async def ok(request):
        seen_agents.append(request.headers.get("User-Agent"))
        return web.Response(text="ok")

    async def moved(request):
        raise web.HTTPFound("/ok")

    async def limited(request):
        return web.Response(status=429)

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_get("/ok", ok)
    app.router.add_get("/moved", moved)
    app.router.add_get("/limited", limited)
    app.router.add_get("/slow", slow)
    return app


def _run(path, *, timeout=5.0):
    seen_agents = []

    async def scenario():
        async with test_utils.TestServer(_app(seen_agents)) as server:
            base = str(server.make_url("")).rstrip("/")
            async with AiohttpTransport(pool_size=2) as transport:
                result = await transport.probe(f"{base}{path}", "probe-agent/1.0", timeout)
            return base, result

    base, result = asyncio.run(scenario())
    return base, result, seen_agents


def test_probe_reports_status_and_response_url():
    base, result, seen_agents = _run("/ok")

    assert isinstance(result, TransportResult)
    assert result.status == 200
    assert result.final_url == f"{base}/ok"
    assert not result.redirected
    assert seen_agents == ["probe-agent/1.0"]


def test_probe_does_not_follow_redirects():
    base, result, seen_agents = _run("/moved")

    assert result.status == 302
    assert result.final_url == f"{base}/ok"
    assert result.location == "/ok"
    assert result.redirected
    # the redirect target was never requested
    assert seen_agents == []


def test_probe_surfaces_rate_limit_status():
    _, result, _ = _run("/limited")
    assert result.status == 429


def test_probe_timeout_raises_transport_error():
    with pytest.raises(TransportError) as excinfo:
        _run("/slow", timeout=0.1)
    assert "timeout" in excinfo.value.cause


def test_probe_connection_failure_raises_transport_error():
    async def scenario():
        async with AiohttpTransport() as transport:
            # port 9 (discard) is not listening on test hosts
            await transport.probe("http://127.0.0.1:9/nothing", "probe-agent/1.0", 2.0)

    with pytest.raises(TransportError):
        asyncio.run(scenario())


def test_probe_outside_context_manager_is_an_error():
    with pytest.raises(RuntimeError):
        asyncio.run(AiohttpTransport().probe("http://127.0.0.1:9/", "ua", 1.0))


def test_final_url_comes_from_the_response():
    # aiohttp drops the fragment from the response URL, so the candidate no longer matches
    base, result, seen_agents = _run("/ok#section")

    assert result.status == 200
    assert result.url == f"{base}/ok#section"
    assert result.final_url == f"{base}/ok"
    assert seen_agents == ["probe-agent/1.0"]
