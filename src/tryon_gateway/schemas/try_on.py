"""Schemas for the virtual try-on endpoint."""

from pydantic import AnyHttpUrl, BaseModel, Field, model_validator


class ImageInput(BaseModel):
    """An input image, either inline base64 data or a URL to fetch."""

    data: str | None = Field(None, description="Base64-encoded image bytes")
    mime_type: str | None = Field(None, max_length=100, description="MIME type of inline data")
    url: AnyHttpUrl | None = Field(None, description="URL of the image to fetch")

    @model_validator(mode="after")
    def check_source(self) -> "ImageInput":
        if (self.data is None) == (self.url is None):
            raise ValueError("Provide exactly one of 'data' or 'url'")
        if self.data is not None and not self.mime_type:
            raise ValueError("'mime_type' is required with inline 'data'")
        return self


class TryOnRequest(BaseModel):
    """Virtual try-on request."""

    user_image: ImageInput
    product_image: ImageInput
    custom_prompt: str | None = Field(None, max_length=2000)


class TryOnResponse(BaseModel):
    """Generated try-on image."""

    base64_image: str
