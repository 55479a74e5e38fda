"""Tests for the upstream image generation client."""

import base64
import json

import httpx
import pytest

from tryon_gateway.core.exceptions import ExternalAPIError, InvalidImageError, UpstreamTimeoutError
from tryon_gateway.schemas.try_on import ImageInput
from tryon_gateway.upstream.gemini import BASE_PROMPT, ImageGenerationClient, ImagePart, build_prompt

IMAGE_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
IMAGE_B64 = base64.b64encode(IMAGE_BYTES).decode("ascii")
PART = ImagePart(data=IMAGE_B64, mime_type="image/png")


def _client(handler, **kwargs) -> ImageGenerationClient:  # type: ignore[no-untyped-def]
    return ImageGenerationClient(
        httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        base_url="https://upstream.test/",
        model="test-image-model",
        **kwargs,
    )


def _image_response(key: str = "inline_data") -> httpx.Response:
    return httpx.Response(
        200,
        json={"candidates": [{"content": {"parts": [{"text": "here"}, {key: {"data": "R0VO"}}]}}]},
    )


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_base_prompt(self) -> None:
        """Blank instructions leave the base prompt untouched."""
        assert build_prompt(None) == BASE_PROMPT
        assert build_prompt("   ") == BASE_PROMPT

    def test_custom_instructions(self) -> None:
        """Caller instructions are appended."""
        assert build_prompt(" tuck the shirt in ") == f"{BASE_PROMPT} Additional instructions: tuck the shirt in"


@pytest.mark.asyncio
class TestLoadImage:
    """Tests for input image loading."""

    async def test_inline_image(self) -> None:
        """Inline base64 data is accepted as-is."""
        client = _client(lambda request: httpx.Response(500))

        part = await client.load_image(ImageInput(data=IMAGE_B64, mime_type="image/png"))

        assert part == PART

    async def test_bad_base64(self) -> None:
        """Data that is not base64 is rejected."""
        client = _client(lambda request: httpx.Response(500))

        with pytest.raises(InvalidImageError, match="not valid base64"):
            await client.load_image(ImageInput(data="@@not-base64@@", mime_type="image/png"))

    async def test_non_image_mime(self) -> None:
        """Only image MIME types are accepted."""
        client = _client(lambda request: httpx.Response(500))

        with pytest.raises(InvalidImageError, match="not an image"):
            await client.load_image(ImageInput(data=IMAGE_B64, mime_type="application/pdf"))

    async def test_too_large(self) -> None:
        """Images above the size cap are rejected."""
        client = _client(lambda request: httpx.Response(500), max_image_bytes=8)

        with pytest.raises(InvalidImageError, match="too large"):
            await client.load_image(ImageInput(data=IMAGE_B64, mime_type="image/png"))

    async def test_url_image(self) -> None:
        """URL images are fetched and take the response content type."""
        client = _client(
            lambda request: httpx.Response(
                200, content=IMAGE_BYTES, headers={"content-type": "image/jpeg; charset=binary"}
            )
        )

        part = await client.load_image(ImageInput(url="https://cdn.test/shirt.jpg"))

        assert part.mime_type == "image/jpeg"
        assert base64.b64decode(part.data) == IMAGE_BYTES

    async def test_url_fetch_failure(self) -> None:
        """Unreachable or failing URLs are invalid images."""
        client = _client(lambda request: httpx.Response(404))

        with pytest.raises(InvalidImageError, match="Failed to fetch"):
            await client.load_image(ImageInput(url="https://cdn.test/missing.jpg"))


@pytest.mark.asyncio
class TestGenerateTryOn:
    """Tests for the generateContent call."""

    async def test_success(self) -> None:
        """The credential goes in the key header and the image comes back."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _image_response()

        client = _client(handler)
        result = await client.generate_try_on("provider-key", PART, PART, "short sleeves")

        assert result == "R0VO"
        request = seen[0]
        assert request.url.path == "/v1beta/models/test-image-model:generateContent"
        assert request.headers["x-goog-api-key"] == "provider-key"
        parts = json.loads(request.content)["contents"][0]["parts"]
        assert parts[0]["text"].endswith("Additional instructions: short sleeves")
        assert parts[1]["inline_data"] == {"mime_type": "image/png", "data": IMAGE_B64}

    async def test_camel_case_response(self) -> None:
        """``inlineData`` responses are read too."""
        client = _client(lambda request: _image_response("inlineData"))

        assert await client.generate_try_on("provider-key", PART, PART) == "R0VO"

    async def test_error_status(self) -> None:
        """Upstream error statuses surface as external API errors."""
        client = _client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ExternalAPIError) as exc_info:
            await client.generate_try_on("provider-key", PART, PART)

        assert exc_info.value.details["upstream_status_code"] == 500

    async def test_timeout(self) -> None:
        """Timeouts surface as the timeout error."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)

        with pytest.raises(UpstreamTimeoutError):
            await client.generate_try_on("provider-key", PART, PART)

    async def test_response_without_image(self) -> None:
        """A response with no image data is an error."""
        client = _client(
            lambda request: httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "no"}]}}]})
        )

        with pytest.raises(ExternalAPIError, match="Could not find generated image"):
            await client.generate_try_on("provider-key", PART, PART)
