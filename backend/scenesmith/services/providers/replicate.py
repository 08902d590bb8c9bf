"""Replicate predictions provider (video, image, music).

API flow:
1. POST /models/{owner}/{name}/predictions (or /predictions with a version)
2. GET  /predictions/{id} until succeeded / failed / canceled
3. Return the first output URL

HTTP failures are translated into the service error taxonomy so the
generation services can decide what to retry.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import time
from typing import Any

import httpx

from scenesmith.config import get_settings
from scenesmith.errors import (
    ConfigurationError,
    ProviderError,
    ProviderRejected,
    ProviderTimeout,
    TransientNetworkError,
)
from scenesmith.services.providers.base import (
    GenerationProvider,
    ImageRequest,
    MusicRequest,
    VideoRequest,
)
from scenesmith.services.storage import MediaStore, get_media_store

logger = logging.getLogger(__name__)
settings = get_settings()

_TERMINAL_FAILURES = {"failed", "canceled"}
_RETRIABLE_STATUS = {408, 409, 425, 429}


def _check_response(response: httpx.Response) -> None:
    """Raise the taxonomy error matching a non-2xx response."""
    code = response.status_code
    if code < 400:
        return
    detail = response.text[:200]
    if code in (401, 403):
        raise ConfigurationError(f"Replicate rejected credentials ({code})")
    if code in _RETRIABLE_STATUS or code >= 500:
        raise TransientNetworkError(f"Replicate HTTP {code}: {detail}")
    raise ProviderRejected(f"Replicate HTTP {code}: {detail}")


def _first_output_url(output: Any) -> str | None:
    if isinstance(output, str):
        return output
    if isinstance(output, list):
        for item in output:
            if isinstance(item, str) and item:
                return item
    if isinstance(output, dict):
        for key in ("video", "audio", "image", "url"):
            if isinstance(output.get(key), str):
                return output[key]
    return None


class ReplicateProvider(GenerationProvider):
    """Replicate HTTP client speaking the predictions API."""

    name = "replicate"

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        poll_interval: float | None = None,
        store: MediaStore | None = None,
    ) -> None:
        self.store = store or get_media_store()
        self.api_token = api_token if api_token is not None else settings.REPLICATE_API_TOKEN
        self.base_url = (base_url or settings.REPLICATE_BASE_URL).rstrip("/")
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.PROVIDER_POLL_INTERVAL
        )
        self._client = http_client
        self._own_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.PROVIDER_HTTP_TIMEOUT)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._own_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        if not self.api_token:
            raise ConfigurationError("REPLICATE_API_TOKEN is not configured")
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        client = self._get_client()
        try:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Replicate request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Replicate unreachable: {e}") from e
        _check_response(response)
        try:
            return response.json()
        except ValueError as e:
            raise TransientNetworkError("Replicate returned a non-JSON body") from e

    async def run_prediction(self, model_id: str, inputs: dict[str, Any], *, timeout: float) -> str:
        """Create a prediction and poll it to a terminal state."""
        if ":" in model_id:
            create_url = f"{self.base_url}/predictions"
            body: dict[str, Any] = {"version": model_id.split(":", 1)[1], "input": inputs}
        else:
            create_url = f"{self.base_url}/models/{model_id}/predictions"
            body = {"input": inputs}

        prediction = await self._request("POST", create_url, json=body)
        prediction_id = prediction.get("id")
        if not prediction_id:
            raise ProviderRejected(f"Replicate returned no prediction id for {model_id}")
        logger.info("Replicate prediction created: %s (model=%s)", prediction_id, model_id)

        poll_url = prediction.get("urls", {}).get("get") or f"{self.base_url}/predictions/{prediction_id}"
        deadline = time.monotonic() + timeout

        while True:
            status = prediction.get("status")
            if status == "succeeded":
                url = _first_output_url(prediction.get("output"))
                if not url:
                    raise ProviderRejected(f"Prediction {prediction_id} succeeded without output")
                return url
            if status in _TERMINAL_FAILURES:
                raise ProviderRejected(
                    f"Prediction {prediction_id} {status}: {prediction.get('error') or 'no detail'}"
                )
            if time.monotonic() >= deadline:
                await self._cancel_prediction(prediction_id)
                raise ProviderTimeout(f"Prediction {prediction_id} not finished after {timeout:g}s")

            logger.debug("Replicate prediction %s: %s", prediction_id, status)
            await asyncio.sleep(self.poll_interval)
            # Failed status reads are retried until the deadline; the prediction is never resubmitted
            try:
                prediction = await self._request("GET", poll_url)
            except (TransientNetworkError, ProviderTimeout) as e:
                logger.warning("Polling prediction %s failed, will retry: %s", prediction_id, e.message)

    async def _cancel_prediction(self, prediction_id: str) -> None:
        """Cancel a prediction that is no longer awaited."""
        try:
            await self._request("POST", f"{self.base_url}/predictions/{prediction_id}/cancel")
            logger.info("Replicate prediction %s canceled", prediction_id)
        except (ProviderError, ConfigurationError) as e:
            logger.warning("Could not cancel prediction %s: %s", prediction_id, e.message)

    async def _portable_url(self, url: str) -> str:
        """Media-volume URLs are not reachable by Replicate; inline them as data URLs."""
        if self.store.key_from_url(url) is None:
            return url
        data = await self.store.fetch_bytes(url)
        mime = mimetypes.guess_type(url)[0] or "application/octet-stream"
        return f"data:{mime};base64,{base64.b64encode(data).decode('utf-8')}"

    async def generate_video(self, request: VideoRequest, *, timeout: float) -> str:
        inputs: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
        }
        if request.duration:
            inputs["duration"] = int(round(request.duration))
        if request.start_image_url:
            inputs["image"] = await self._portable_url(request.start_image_url)
        if request.reference_image_urls:
            inputs["reference_images"] = [
                await self._portable_url(u) for u in request.reference_image_urls
            ]
        if request.continue_from_video_url:
            inputs["video"] = await self._portable_url(request.continue_from_video_url)
        return await self.run_prediction(request.model_id, inputs, timeout=timeout)

    async def generate_image(self, request: ImageRequest, *, timeout: float) -> str:
        inputs = {"prompt": request.prompt, "aspect_ratio": request.aspect_ratio}
        return await self.run_prediction(request.model_id, inputs, timeout=timeout)

    async def generate_music(self, request: MusicRequest, *, timeout: float) -> str:
        inputs: dict[str, Any] = {
            "lyrics": request.lyrics,
            "bitrate": request.bitrate,
            "sample_rate": request.sample_rate,
            "audio_format": request.audio_format,
        }
        if request.prompt:
            inputs["prompt"] = request.prompt
        return await self.run_prediction(settings.MUSIC_MODEL, inputs, timeout=timeout)
