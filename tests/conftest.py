"""Shared test fixtures."""

import base64
from dataclasses import dataclass, field

import pytest

from sketchy_client.adapters.sketchy_api_client import SketchyApiClient
from sketchy_client.config import Settings
from sketchy_client.containers import AppContainer
from sketchy_client.domain.api_models import (
    AnalysisResponse,
    ImageResponse,
    UploadResponse,
)
from sketchy_client.domain.workflow import ImageFile
from sketchy_client.errors import WorkflowError
from sketchy_client.services.orchestrator import StepOrchestrator
from sketchy_client.services.persistence import KeyValueStore, PersistenceAdapter
from sketchy_client.services.recovery import SessionRecovery
from sketchy_client.services.workflow import WorkflowStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"fake-png-body"


def png_b64(suffix: bytes = b"") -> str:
    return base64.b64encode(PNG_BYTES + suffix).decode("utf-8")


def image_file(name: str = "cat.png", mime_type: str = "image/png") -> ImageFile:
    return ImageFile(name=name, mime_type=mime_type, data=b"raw-" + name.encode())


@dataclass
class InMemoryStateStore(KeyValueStore):
    """In-memory key-value store for tests."""

    values: dict[str, str] = field(default_factory=dict)
    writes: int = 0
    write_error: Exception | None = None

    def read(self, key: str) -> str | None:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes += 1
        self.values[key] = value


@dataclass
class FakeSketchyApiClient(SketchyApiClient):
    """Fake backend client that records calls and returns queued results."""

    upload_ids: list[str] = field(default_factory=lambda: ["a", "b"])
    analysis: AnalysisResponse = field(
        default_factory=lambda: AnalysisResponse(id="an1", prompt_description="a cat")
    )
    regeneration: ImageResponse = field(
        default_factory=lambda: ImageResponse(id="r1", data=png_b64(b"r1"))
    )
    improvement_ids: list[str] = field(default_factory=lambda: ["i1", "i2", "i3"])
    failures: dict[str, WorkflowError] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)

    async def upload(self, files: list[ImageFile]) -> UploadResponse:
        self.calls.append(("upload", *(file.name for file in files)))
        self._maybe_fail("upload")
        ids = self.upload_ids[: len(files)]
        return UploadResponse(count=len(ids), session_id="s1", uploaded_images=ids)

    async def analyze(self, image_id: str, provider: str) -> AnalysisResponse:
        self.calls.append(("analyze", image_id, provider))
        self._maybe_fail("analyze")
        return self.analysis

    async def regenerate(
        self, analysis_id: str, prompt: str, provider: str
    ) -> ImageResponse:
        self.calls.append(("regenerate", analysis_id, prompt, provider))
        self._maybe_fail("regenerate")
        return self.regeneration

    async def improve_from_original(
        self, regeneration_id: str, prompt: str
    ) -> ImageResponse:
        self.calls.append(("from_original", regeneration_id, prompt))
        self._maybe_fail("improve")
        return self._next_improvement()

    async def improve_from_improved(self, link_id: str, prompt: str) -> ImageResponse:
        self.calls.append(("from_improved", link_id, prompt))
        self._maybe_fail("improve")
        return self._next_improvement()

    async def close(self) -> None:
        return None

    def _maybe_fail(self, step: str) -> None:
        error = self.failures.get(step)
        if error is not None:
            raise error

    def _next_improvement(self) -> ImageResponse:
        link_id = self.improvement_ids.pop(0)
        return ImageResponse(id=link_id, data=png_b64(link_id.encode()))


def build_orchestrator(
    client: FakeSketchyApiClient | None = None,
    state_store: InMemoryStateStore | None = None,
) -> StepOrchestrator:
    store = WorkflowStore()
    persistence = PersistenceAdapter(state_store or InMemoryStateStore())
    return StepOrchestrator(
        store=store,
        persistence=persistence,
        client=client or FakeSketchyApiClient(),
        recovery=SessionRecovery(store, persistence),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_base_url="https://sketchy.test/api/v1",
        state_dir=str(tmp_path / "state"),
        export_dir=str(tmp_path / "exports"),
    )


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def api_client() -> FakeSketchyApiClient:
    return FakeSketchyApiClient()


@pytest.fixture
def container(
    settings: Settings,
    state_store: InMemoryStateStore,
    api_client: FakeSketchyApiClient,
) -> AppContainer:
    workflow_store = WorkflowStore()
    persistence = PersistenceAdapter(state_store, key=settings.session_key)
    recovery = SessionRecovery(workflow_store, persistence)
    orchestrator = StepOrchestrator(
        store=workflow_store,
        persistence=persistence,
        client=api_client,
        recovery=recovery,
        analysis_provider=settings.analysis_provider,
        generation_provider=settings.generation_provider,
    )

    async def close_resources() -> None:
        await api_client.close()

    return AppContainer(
        settings=settings,
        api_client=api_client,
        workflow_store=workflow_store,
        persistence=persistence,
        recovery=recovery,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
