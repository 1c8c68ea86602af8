"""Step orchestration against the sketch backend."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from sketchy_client.adapters.sketchy_api_client import SketchyApiClient
from sketchy_client.domain import workflow
from sketchy_client.domain.workflow import (
    Analysis,
    ImageFile,
    ImprovementLink,
    Regeneration,
    UploadedImageRef,
    WorkflowState,
)
from sketchy_client.errors import (
    InvalidInput,
    PreconditionFailed,
    RemoteFailure,
    StepInProgress,
)
from sketchy_client.services.images import decode_base64, write_image
from sketchy_client.services.persistence import PersistenceAdapter
from sketchy_client.services.recovery import SessionRecovery
from sketchy_client.services.workflow import WorkflowStore

_logger = logging.getLogger(__name__)


class Step(StrEnum):
    """Workflow steps that call the backend."""

    UPLOAD = "upload"
    ANALYZE = "analyze"
    REGENERATE = "regenerate"
    IMPROVE = "improve"


@dataclass(frozen=True)
class StepResult:
    """Committed state plus a status line for the UI."""

    state: WorkflowState
    status: str


@dataclass
class StepOrchestrator:
    """Runs each workflow step as one backend call followed by a commit."""

    store: WorkflowStore
    persistence: PersistenceAdapter
    client: SketchyApiClient
    recovery: SessionRecovery
    analysis_provider: str = "openai"
    generation_provider: str = "stabilityai"
    _in_flight: set[Step] = field(default_factory=set, init=False, repr=False)

    @property
    def busy_steps(self) -> frozenset[Step]:
        """Steps whose trigger should currently be disabled."""
        return frozenset(self._in_flight)

    async def submit_files(self, files: list[ImageFile]) -> StepResult:
        """Handle a file selection: finish a pending recovery or upload a batch."""
        if self.recovery.pending:
            if not files:
                raise InvalidInput("Select at least one file.")
            state = self.recovery.rebind(files)
            restored = len(state.session.uploaded_images)
            return StepResult(state=state, status=f"{restored} file(s) restored.")
        return await self.upload(files)

    async def upload(self, files: list[ImageFile]) -> StepResult:
        """Upload a new batch of images."""
        if not files:
            raise InvalidInput("Select at least one file.")
        async with self._running(Step.UPLOAD):
            result = await self.client.upload(files)
        images = [
            UploadedImageRef(
                id=image_id,
                file_handle=file,
                display_name=file.name,
                mime_type=file.mime_type,
            )
            for image_id, file in zip(result.uploaded_images, files, strict=False)
        ]
        if not images:
            raise RemoteFailure("Upload failed")
        state = self._commit(
            workflow.record_upload(images, server_session_id=result.session_id)
        )
        self.recovery.discard()
        _logger.info("Uploaded %s image(s) in session %s", result.count, result.session_id)
        return StepResult(
            state=state,
            status=(
                f"{result.count} file(s) uploaded. Session ID: {result.session_id}"
            ),
        )

    def select(self, image_id: str) -> StepResult:
        """Select an uploaded image for analysis."""
        state = self._commit(workflow.select_image(self.store.state, image_id))
        return StepResult(state=state, status=f"Selected image {image_id}")

    async def analyze(self, provider: str | None = None) -> StepResult:
        """Analyze the selected image."""
        image_id = self.store.state.session.selected_image_id
        if image_id is None:
            raise PreconditionFailed("Select an image before analyzing.")
        provider = provider or self.analysis_provider
        async with self._running(Step.ANALYZE):
            result = await self.client.analyze(image_id, provider)
        analysis = Analysis(id=result.id, prompt_description=result.prompt_description)
        state = self._commit(workflow.record_analysis(self.store.state, analysis))
        _logger.info("Analysis %s committed for image %s", analysis.id, image_id)
        return StepResult(state=state, status=f"Analysis complete. ID: {analysis.id}")

    async def regenerate(
        self, prompt: str | None = None, provider: str | None = None
    ) -> StepResult:
        """Regenerate an image from the (possibly edited) analysis prompt."""
        analysis = self.store.state.analysis
        if analysis is None:
            raise PreconditionFailed("Analyze an image before regenerating.")
        text = self.store.effective_prompt() if prompt is None else prompt
        if not text or not text.strip():
            raise InvalidInput("Prompt cannot be empty.")
        provider = provider or self.generation_provider
        async with self._running(Step.REGENERATE):
            result = await self.client.regenerate(analysis.id, text, provider)
        regeneration = Regeneration(id=result.id, image_data=_decode_image(result.data))
        state = self._commit(
            workflow.record_regeneration(self.store.state, regeneration, prompt=text)
        )
        _logger.info("Regeneration %s committed from analysis %s", result.id, analysis.id)
        return StepResult(
            state=state, status=f"Regeneration complete. ID: {regeneration.id}"
        )

    async def improve(self, prompt: str) -> StepResult:
        """Refine the chain tip; the first call builds on the regeneration."""
        if not prompt or not prompt.strip():
            raise InvalidInput("Improvement prompt cannot be empty.")
        state = self.store.state
        tip = self.store.current_tip()
        from_original = state.chain is None or not state.chain.links
        async with self._running(Step.IMPROVE):
            if from_original:
                result = await self.client.improve_from_original(tip, prompt)
            else:
                result = await self.client.improve_from_improved(tip, prompt)
        link = ImprovementLink(id=result.id, image_data=_decode_image(result.data))
        if self.store.current_tip() != tip:
            raise PreconditionFailed("The image changed while improving; try again.")
        state = self._commit(workflow.record_improvement(self.store.state, link))
        _logger.info("Improvement %s committed on top of %s", link.id, tip)
        return StepResult(
            state=state, status=f"Improvement complete. New ID: {link.id}"
        )

    def edit_prompt(self, text: str) -> WorkflowState:
        """Keep a local edit of the analysis prompt."""
        return self._commit(workflow.edit_prompt(self.store.state, text))

    def export_image(self, directory: Path) -> Path:
        """Save the image at the chain tip as a PNG file."""
        path = write_image(directory, self.store.current_image())
        _logger.info("Exported image to %s", path)
        return path

    def reset(self) -> WorkflowState:
        """Start over with an empty session."""
        state = self._commit(WorkflowState())
        self.recovery.discard()
        return state

    def _commit(self, state: WorkflowState) -> WorkflowState:
        self.persistence.persist(state)
        return self.store.commit(state)

    @asynccontextmanager
    async def _running(self, step: Step) -> AsyncIterator[None]:
        if step in self._in_flight:
            raise StepInProgress(f"{step.value.capitalize()} is already in progress.")
        self._in_flight.add(step)
        _logger.info("Step %s started", step.value)
        try:
            yield
        finally:
            self._in_flight.discard(step)


def _decode_image(data: str) -> bytes:
    try:
        return decode_base64(data)
    except ValueError as exc:
        raise RemoteFailure("The backend returned invalid image data.") from exc
