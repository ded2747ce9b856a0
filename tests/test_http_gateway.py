"""Remote stage calls: request shapes and status code mapping."""

import asyncio
import json

import httpx
import pytest

from newsroom.core.errors import InvalidInput, NotFound, PipelineError, PreconditionFailed, UpstreamFailure
from newsroom.services.pipeline import HttpStageGateway, LocalStageGateway, build_stage_gateway


def gateway_with(handler, settings):
    return HttpStageGateway(settings, transport=httpx.MockTransport(handler))


@pytest.mark.unit
def test_generate_posts_expected_body(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"content_id": "a-1"})

    result = asyncio.run(gateway_with(handler, settings).generate("raw-1", "praha2"))

    assert result == {"content_id": "a-1"}
    assert seen["url"] == settings.generator_url
    assert seen["body"] == {"raw_content_id": "raw-1", "neighborhood": "praha2", "category": None, "force": False}


@pytest.mark.unit
def test_collect_passes_sources_as_query(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"collected": 0, "errors": []})

    asyncio.run(gateway_with(handler, settings).collect(sources=["dpp", "praha4"], limit=5))

    assert seen["params"] == {"sources": "dpp,praha4", "limit": "5"}


@pytest.mark.unit
@pytest.mark.parametrize("status, error", [
    (400, InvalidInput),
    (404, NotFound),
    (409, PreconditionFailed),
    (500, UpstreamFailure),
    (503, UpstreamFailure),
])
def test_status_codes_map_to_errors(settings, status, error):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"detail": "nope"})

    with pytest.raises(error):
        asyncio.run(gateway_with(handler, settings).publish("a-1"))


@pytest.mark.unit
def test_transport_errors_are_upstream_failures(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamFailure):
        asyncio.run(gateway_with(handler, settings).score())


@pytest.mark.unit
def test_transport_setting_selects_gateway(settings, session_factory):
    assert isinstance(build_stage_gateway(session_factory, settings=settings), LocalStageGateway)

    settings.stage_transport = "http"
    assert isinstance(build_stage_gateway(session_factory, settings=settings), HttpStageGateway)

    settings.stage_transport = "carrier-pigeon"
    with pytest.raises(PipelineError):
        build_stage_gateway(session_factory, settings=settings)
