"""Sketch backend API client."""

import logging
from dataclasses import dataclass
from typing import Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from sketchy_client.domain.api_models import (
    AnalysisResponse,
    ErrorResponse,
    ImageResponse,
    UploadResponse,
)
from sketchy_client.domain.workflow import ImageFile
from sketchy_client.errors import RemoteFailure, TransportFailure

UPLOAD_FAILED = "Upload failed"
ANALYSIS_FAILED = "Analysis failed"
REGENERATION_FAILED = "Regeneration failed"
IMPROVEMENT_FAILED = "Improvement failed"

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_logger = logging.getLogger(__name__)


class SketchyApiClient(Protocol):
    """Interface for the upload/analyze/regenerate/improve endpoints."""

    async def upload(self, files: list[ImageFile]) -> UploadResponse:
        """Upload one or more images as a new session."""

    async def analyze(self, image_id: str, provider: str) -> AnalysisResponse:
        """Request a textual description of an uploaded image."""

    async def regenerate(
        self, analysis_id: str, prompt: str, provider: str
    ) -> ImageResponse:
        """Generate an image from an analysis prompt."""

    async def improve_from_original(
        self, regeneration_id: str, prompt: str
    ) -> ImageResponse:
        """Refine a regenerated image."""

    async def improve_from_improved(self, link_id: str, prompt: str) -> ImageResponse:
        """Refine a previously improved image."""


@dataclass
class HttpxSketchyApiClient(SketchyApiClient):
    """Sketch backend client using httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 120

    @classmethod
    def create(cls, base_url: str, timeout: float = 120) -> "HttpxSketchyApiClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            timeout=timeout,
        )

    async def upload(self, files: list[ImageFile]) -> UploadResponse:
        """POST the files as multipart field ``images``."""
        multipart = [
            ("images", (file.name, file.data, file.mime_type)) for file in files
        ]
        return await self._post(
            "/upload",
            UploadResponse,
            fallback=UPLOAD_FAILED,
            files=multipart,
        )

    async def analyze(self, image_id: str, provider: str) -> AnalysisResponse:
        """POST /analyze/{image_id}?provider=..."""
        return await self._post(
            f"/analyze/{image_id}",
            AnalysisResponse,
            fallback=ANALYSIS_FAILED,
            params={"provider": provider},
        )

    async def regenerate(
        self, analysis_id: str, prompt: str, provider: str
    ) -> ImageResponse:
        """POST /regenerate/{analysis_id} with the prompt and provider."""
        return await self._post(
            f"/regenerate/{analysis_id}",
            ImageResponse,
            fallback=REGENERATION_FAILED,
            json={"prompt": prompt, "provider": provider},
        )

    async def improve_from_original(
        self, regeneration_id: str, prompt: str
    ) -> ImageResponse:
        """POST /improve/from_original/{regeneration_id}."""
        return await self._post(
            f"/improve/from_original/{regeneration_id}",
            ImageResponse,
            fallback=IMPROVEMENT_FAILED,
            json={"prompt": prompt},
        )

    async def improve_from_improved(self, link_id: str, prompt: str) -> ImageResponse:
        """POST /improve/from_improved/{link_id}."""
        return await self._post(
            f"/improve/from_improved/{link_id}",
            ImageResponse,
            fallback=IMPROVEMENT_FAILED,
            json={"prompt": prompt},
        )

    async def _post(
        self,
        path: str,
        model: type[_ModelT],
        *,
        fallback: str,
        **kwargs: object,
    ) -> _ModelT:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http_client.post(url, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as exc:
            _logger.warning("Request to %s failed: %s", path, exc)
            raise TransportFailure(fallback) from exc

        if not response.is_success:
            message = _error_message(response) or fallback
            _logger.warning(
                "Backend rejected %s (status=%s): %s",
                path,
                response.status_code,
                message,
            )
            raise RemoteFailure(message, status_code=response.status_code)

        try:
            return model.model_validate_json(response.content)
        except ValidationError as exc:
            _logger.warning("Unexpected payload from %s: %s", path, exc)
            raise RemoteFailure(fallback, status_code=response.status_code) from exc

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _error_message(response: httpx.Response) -> str | None:
    """Return the ``message`` field of an error body, if any."""
    try:
        body = ErrorResponse.model_validate_json(response.content)
    except ValidationError:
        return None
    return body.message or None
