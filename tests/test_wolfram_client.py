"""
Tests for the Wolfram Alpha visualizer.

HTTP is replaced by a tiny fake session; the payloads mirror the shape of
the Full Results API JSON output.
"""

import aiohttp
import pytest

from exceptions import VisualizationError
from wolfram_client import WolframVisualizer, extract_image_url


def pod(pod_id, *srcs):
    return {"id": pod_id, "subpods": [{"img": {"src": src}} for src in srcs]}


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self.payload = payload

    async def json(self, content_type=None):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, status=200, payload=None, error=None):
        self.status = status
        self.payload = payload
        self.error = error
        self.requests = []
        self.closed = False

    def get(self, url, params=None):
        self.requests.append((url, params))
        if self.error:
            raise self.error
        return FakeResponse(self.status, self.payload)

    async def close(self):
        self.closed = True


class TestExtractImageUrl:
    def test_first_result_pod_image(self):
        payload = {"queryresult": {"success": True, "pods": [
            pod("Input", "https://wa/input.gif"),
            pod("NumberLine", "https://wa/line.gif"),
            pod("Result", "https://wa/result.gif"),
        ]}}

        assert extract_image_url(payload) == "https://wa/line.gif"

    def test_input_pod_used_when_only_image(self):
        payload = {"queryresult": {"success": True, "pods": [pod("Input", "https://wa/input.gif")]}}

        assert extract_image_url(payload) == "https://wa/input.gif"

    def test_unsuccessful_query(self):
        assert extract_image_url({"queryresult": {"success": False, "pods": []}}) is None

    def test_pods_without_images(self):
        payload = {"queryresult": {"success": True, "pods": [{"id": "Result", "subpods": [{}]}]}}

        assert extract_image_url(payload) is None

    def test_empty_payload(self):
        assert extract_image_url({}) is None


class TestFetch:
    async def test_returns_image_url(self):
        session = FakeSession(payload={"queryresult": {"success": True, "pods": [
            pod("Plot", "https://wa/plot.gif"),
        ]}})
        visualizer = WolframVisualizer(app_id="APP-123", session=session)

        assert await visualizer.fetch("plot y = 2x") == "https://wa/plot.gif"

        url, params = session.requests[0]
        assert params["appid"] == "APP-123"
        assert params["input"] == "plot y = 2x"
        assert params["output"] == "json"
        # Injected sessions belong to the caller
        assert session.closed is False

    async def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("WOLFRAM_APP_ID", raising=False)
        visualizer = WolframVisualizer(session=FakeSession())

        with pytest.raises(VisualizationError, match="not configured"):
            await visualizer.fetch("plot x")

    async def test_blank_query(self):
        with pytest.raises(VisualizationError):
            await WolframVisualizer(app_id="APP", session=FakeSession()).fetch("  ")

    async def test_http_error(self):
        visualizer = WolframVisualizer(app_id="APP", session=FakeSession(status=501))

        with pytest.raises(VisualizationError, match="HTTP 501"):
            await visualizer.fetch("plot x")

    async def test_client_error(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        visualizer = WolframVisualizer(app_id="APP", session=session)

        with pytest.raises(VisualizationError, match="refused"):
            await visualizer.fetch("plot x")

    async def test_no_image_in_result(self):
        session = FakeSession(payload={"queryresult": {"success": False}})
        visualizer = WolframVisualizer(app_id="APP", session=session)

        with pytest.raises(VisualizationError, match="no image"):
            await visualizer.fetch("gibberish")

    async def test_error_carries_query(self):
        visualizer = WolframVisualizer(app_id="APP", session=FakeSession(status=500))

        with pytest.raises(VisualizationError) as exc_info:
            await visualizer.fetch("number line 3/4")
        assert exc_info.value.query == "number line 3/4"
