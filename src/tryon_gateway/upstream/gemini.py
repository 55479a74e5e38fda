"""HTTP client for the upstream generative image API."""

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any

import httpx

from tryon_gateway.core.config import get_settings
from tryon_gateway.core.exceptions import ExternalAPIError, InvalidImageError, UpstreamTimeoutError
from tryon_gateway.core.logging import LoggerMixin
from tryon_gateway.core.metrics import upstream_latency_seconds
from tryon_gateway.schemas.try_on import ImageInput

settings = get_settings()

BASE_PROMPT = (
    "Generate a virtual try-on image. Place the clothing item from the second "
    "image onto the person in the first image. The new clothing should fit "
    "naturally and match the person's pose and background. The result must be "
    "photorealistic."
)


@dataclass(frozen=True)
class ImagePart:
    """Base64 image data ready to send upstream."""

    data: str
    mime_type: str


def build_prompt(custom_prompt: str | None = None) -> str:
    """Base try-on prompt with optional caller instructions appended."""
    if custom_prompt and custom_prompt.strip():
        return f"{BASE_PROMPT} Additional instructions: {custom_prompt.strip()}"
    return BASE_PROMPT


class ImageGenerationClient(LoggerMixin):
    """
    Client for a ``generateContent`` style image model.

    Each call is made with the provider credential allocated for the
    request and bounded by ``upstream_timeout_seconds``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_image_bytes: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.upstream_base_url).rstrip("/")
        self.model = model or settings.upstream_model
        self.timeout = timeout or settings.upstream_timeout_seconds
        self.max_image_bytes = max_image_bytes or settings.max_image_bytes
        self.http_client = http_client or httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def load_image(self, image: ImageInput) -> ImagePart:
        """
        Turn an inline or URL image into base64 data.

        Raises:
            InvalidImageError: If the data is not valid base64, is too large,
                is not an image, or cannot be fetched
        """
        if image.data is not None:
            try:
                raw = base64.b64decode(image.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidImageError("Image data is not valid base64") from e
            mime_type = image.mime_type or ""
        else:
            raw, mime_type = await self._fetch_image(str(image.url))

        if not mime_type.startswith("image/"):
            raise InvalidImageError(
                "Input is not an image",
                details={"mime_type": mime_type or None},
            )
        if len(raw) > self.max_image_bytes:
            raise InvalidImageError(
                "Image is too large",
                details={"max_bytes": self.max_image_bytes, "size_bytes": len(raw)},
            )

        return ImagePart(data=base64.b64encode(raw).decode("ascii"), mime_type=mime_type)

    async def _fetch_image(self, url: str) -> tuple[bytes, str]:
        try:
            response = await self.http_client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            self.logger.warning("image_fetch_failed", url=url, error=str(e))
            raise InvalidImageError(f"Failed to fetch image from URL: {e}") from e

        if response.status_code >= 400:
            raise InvalidImageError(
                "Failed to fetch image from URL",
                details={"status_code": response.status_code},
            )

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return response.content, content_type

    async def generate_try_on(
        self,
        api_key: str,
        user_image: ImagePart,
        product_image: ImagePart,
        custom_prompt: str | None = None,
    ) -> str:
        """
        Ask the model for a try-on image and return it as base64.

        Raises:
            UpstreamTimeoutError: If the model does not answer in time
            ExternalAPIError: On transport errors, error statuses or a
                response without image data
        """
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": build_prompt(custom_prompt)},
                        {"inline_data": {"mime_type": user_image.mime_type, "data": user_image.data}},
                        {"inline_data": {"mime_type": product_image.mime_type, "data": product_image.data}},
                    ],
                }
            ]
        }
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"

        start = time.perf_counter()
        try:
            response = await self.http_client.post(
                url,
                json=payload,
                headers={"x-goog-api-key": api_key},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            self._observe("timeout", start)
            self.logger.error("upstream_timeout", model=self.model, timeout=self.timeout)
            raise UpstreamTimeoutError(details={"timeout_seconds": self.timeout}) from e
        except httpx.HTTPError as e:
            self._observe("error", start)
            self.logger.error("upstream_request_failed", model=self.model, error=str(e))
            raise ExternalAPIError(f"Upstream request failed: {e}") from e

        if response.status_code >= 400:
            self._observe("error", start)
            self.logger.error(
                "upstream_error_status",
                model=self.model,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ExternalAPIError(
                "Upstream API returned an error",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            self._observe("error", start)
            raise ExternalAPIError("Upstream API returned a non-JSON response") from e

        image_data = self._extract_image(body) if isinstance(body, dict) else None
        if image_data is None:
            self._observe("error", start)
            self.logger.error("upstream_no_image", model=self.model)
            raise ExternalAPIError("Could not find generated image data in the API response")

        self._observe("success", start)
        return image_data

    @staticmethod
    def _extract_image(body: dict[str, Any]) -> str | None:
        for candidate in body.get("candidates") or []:
            parts = (candidate.get("content") or {}).get("parts") or []
            for part in parts:
                inline = part.get("inline_data") or part.get("inlineData")
                if inline and inline.get("data"):
                    return str(inline["data"])
        return None

    @staticmethod
    def _observe(outcome: str, start: float) -> None:
        upstream_latency_seconds.labels(outcome=outcome).observe(time.perf_counter() - start)


_image_client: ImageGenerationClient | None = None


async def get_image_client() -> ImageGenerationClient:
    """Get the shared image generation client."""
    global _image_client
    if _image_client is None:
        _image_client = ImageGenerationClient()
    return _image_client


async def close_image_client() -> None:
    """Close the shared image generation client."""
    global _image_client
    if _image_client is not None:
        await _image_client.close()
        _image_client = None
