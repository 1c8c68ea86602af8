"""Payloads returned by the sketch backend."""

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Result of a multipart upload."""

    count: int = Field(ge=0)
    session_id: str
    uploaded_images: list[str]


class AnalysisResponse(BaseModel):
    """Result of analyzing an uploaded image."""

    id: str
    prompt_description: str


class ImageResponse(BaseModel):
    """Regenerated or improved image with base64 PNG data."""

    id: str
    data: str


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""

    message: str | None = None
    error: str | None = None
