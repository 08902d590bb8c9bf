"""Tests for scenesmith/services/providers/replicate.py (httpx.MockTransport)."""

import json

import httpx
import pytest

from scenesmith.errors import ConfigurationError, ProviderRejected, ProviderTimeout, TransientNetworkError
from scenesmith.services.providers.base import ImageRequest, VideoRequest
from scenesmith.services.providers.replicate import ReplicateProvider, _first_output_url

BASE = "https://replicate.test/v1"


def _provider(handler, store, token="r8_test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReplicateProvider(api_token=token, base_url=BASE, http_client=client, poll_interval=0, store=store)


class TestPredictionFlow:

    async def test_create_then_poll_until_succeeded(self, store):
        seen = []
        polls = iter([
            {"id": "p1", "status": "processing"},
            {"id": "p1", "status": "succeeded", "output": ["https://cdn.test/out.mp4"]},
        ])

        def handler(request: httpx.Request):
            seen.append((request.method, request.url.path))
            if request.method == "POST":
                assert request.headers["Authorization"] == "Bearer r8_test"
                body = json.loads(request.content)
                assert body["input"]["prompt"] == "a fox"
                assert body["input"]["duration"] == 6
                return httpx.Response(201, json={
                    "id": "p1", "status": "starting", "urls": {"get": f"{BASE}/predictions/p1"},
                })
            return httpx.Response(200, json=next(polls))

        provider = _provider(handler, store)
        url = await provider.generate_video(
            VideoRequest(prompt="a fox", model_id="google/veo-3.1", duration=6.2), timeout=10,
        )
        assert url == "https://cdn.test/out.mp4"
        assert seen[0] == ("POST", "/v1/models/google/veo-3.1/predictions")
        assert seen[1:] == [("GET", "/v1/predictions/p1")] * 2

    async def test_versioned_model_uses_predictions_endpoint(self, store):
        def handler(request: httpx.Request):
            body = json.loads(request.content)
            assert request.url.path == "/v1/predictions"
            assert body["version"] == "abc123"
            return httpx.Response(201, json={"id": "p2", "status": "succeeded", "output": "https://cdn.test/i.png"})

        provider = _provider(handler, store)
        url = await provider.generate_image(ImageRequest(prompt="logo", model_id="owner/model:abc123"), timeout=5)
        assert url == "https://cdn.test/i.png"

    async def test_local_media_inlined_as_data_url(self, store):
        stored = store.save_bytes("p/frames/scene_01_last.jpg", b"frame-bytes")
        captured = {}

        def handler(request: httpx.Request):
            captured.update(json.loads(request.content)["input"])
            return httpx.Response(201, json={"id": "p3", "status": "succeeded", "output": "https://cdn.test/v.mp4"})

        provider = _provider(handler, store)
        await provider.generate_video(
            VideoRequest(prompt="next", model_id="m/v", start_image_url=stored.url,
                         reference_image_urls=["https://elsewhere.test/ref.png"]),
            timeout=5,
        )
        assert captured["image"].startswith("data:image/jpeg;base64,")
        assert captured["reference_images"] == ["https://elsewhere.test/ref.png"]


class TestErrorMapping:

    async def test_failed_prediction_is_rejected(self, store):
        def handler(request):
            return httpx.Response(201, json={"id": "p4", "status": "failed", "error": "NSFW"})

        with pytest.raises(ProviderRejected, match="NSFW"):
            await _provider(handler, store).generate_video(VideoRequest(prompt="x", model_id="m/v"), timeout=5)

    @pytest.mark.parametrize("status,error", [
        (401, ConfigurationError),
        (422, ProviderRejected),
        (429, TransientNetworkError),
        (503, TransientNetworkError),
    ])
    async def test_http_status_mapping(self, store, status, error):
        def handler(request):
            return httpx.Response(status, text="nope")

        with pytest.raises(error):
            await _provider(handler, store).generate_video(VideoRequest(prompt="x", model_id="m/v"), timeout=5)

    async def test_missing_token(self, store):
        provider = _provider(lambda r: httpx.Response(200), store, token="")
        with pytest.raises(ConfigurationError):
            await provider.generate_video(VideoRequest(prompt="x", model_id="m/v"), timeout=5)

    async def test_transport_timeout(self, store):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderTimeout):
            await _provider(handler, store).generate_video(VideoRequest(prompt="x", model_id="m/v"), timeout=5)

    async def test_poll_deadline_cancels_prediction(self, store):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"id": "p5", "status": "processing"})

        with pytest.raises(ProviderTimeout):
            await _provider(handler, store).generate_video(VideoRequest(prompt="x", model_id="m/v"), timeout=0)
        assert seen[-1] == ("POST", "/v1/predictions/p5/cancel")


def _connection_reset(request):
    raise httpx.ConnectError("reset", request=request)


class TestPolling:

    @pytest.mark.parametrize("failure", [
        lambda request: httpx.Response(502, text="bad gateway"),
        lambda request: httpx.Response(429, text="slow down"),
        _connection_reset,
    ])
    async def test_transient_status_read_does_not_resubmit(self, store, failure):
        created = []
        polls = iter([failure, lambda request: httpx.Response(200, json={
            "id": "p6", "status": "succeeded", "output": "https://cdn.test/v.mp4",
        })])

        def handler(request: httpx.Request):
            if request.method == "POST":
                created.append(request.url.path)
                return httpx.Response(201, json={"id": "p6", "status": "starting"})
            return next(polls)(request)

        url = await _provider(handler, store).generate_video(VideoRequest(prompt="x", model_id="m/v"), timeout=10)
        assert url == "https://cdn.test/v.mp4"
        assert created == ["/v1/models/m/v/predictions"]


class TestOutputParsing:

    def test_first_output_url_shapes(self):
        assert _first_output_url("https://a") == "https://a"
        assert _first_output_url([None, "https://b"]) == "https://b"
        assert _first_output_url({"audio": "https://c"}) == "https://c"
        assert _first_output_url(None) is None
