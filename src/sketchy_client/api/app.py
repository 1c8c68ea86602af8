"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sketchy_client.app_logging import configure_logging
from sketchy_client.containers import AppContainer
from sketchy_client.domain.workflow import ImageFile
from sketchy_client.errors import (
    InvalidInput,
    NotFound,
    PersistenceFailure,
    PreconditionFailed,
    RemoteFailure,
    StepInProgress,
    TransportFailure,
    WorkflowError,
)
from sketchy_client.services.images import to_data_url
from sketchy_client.services.orchestrator import StepResult

_ERROR_STATUS: dict[type[WorkflowError], tuple[int, str]] = {
    InvalidInput: (400, "Validation error"),
    PreconditionFailed: (409, "Precondition failed"),
    StepInProgress: (409, "Step in progress"),
    NotFound: (404, "Not found"),
    RemoteFailure: (502, "Backend error"),
    TransportFailure: (503, "Backend unavailable"),
    PersistenceFailure: (503, "Storage unavailable"),
}


class RegenerateRequest(BaseModel):
    prompt: str | None = None
    provider: str | None = None


class PromptRequest(BaseModel):
    prompt: str


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        prompt = app.state.container.recovery.begin()
        if prompt is not None:
            logger.info("Waiting for %s file(s) to restore session", len(prompt.files))
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(
        request: Request, exc: WorkflowError
    ) -> JSONResponse:
        status_code, label = _error_status(exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": label, "message": exc.message},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/workflow")
    async def get_workflow(request: Request) -> dict[str, object]:
        """Return everything the UI needs to re-render."""
        state_container: AppContainer = request.app.state.container
        return _workflow_view(state_container)

    @app.post("/workflow/files")
    async def submit_files(
        request: Request, images: list[UploadFile] = File(...)
    ) -> dict[str, object]:
        """Upload a new batch, or re-bind files for a pending recovery."""
        state_container: AppContainer = request.app.state.container
        files = [
            ImageFile(
                name=image.filename or "upload",
                mime_type=image.content_type or "application/octet-stream",
                data=await image.read(),
            )
            for image in images
        ]
        result = await state_container.orchestrator.submit_files(files)
        return _step_view(state_container, result)

    @app.post("/workflow/select/{image_id}")
    async def select_image(image_id: str, request: Request) -> dict[str, object]:
        """Select an uploaded image."""
        state_container: AppContainer = request.app.state.container
        result = state_container.orchestrator.select(image_id)
        return _step_view(state_container, result)

    @app.post("/workflow/analyze")
    async def analyze(
        request: Request, provider: str | None = None
    ) -> dict[str, object]:
        """Analyze the selected image."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.orchestrator.analyze(provider)
        return _step_view(state_container, result)

    @app.put("/workflow/prompt")
    async def edit_prompt(body: PromptRequest, request: Request) -> dict[str, object]:
        """Store a local edit of the analysis prompt."""
        state_container: AppContainer = request.app.state.container
        state_container.orchestrator.edit_prompt(body.prompt)
        return _workflow_view(state_container)

    @app.post("/workflow/regenerate")
    async def regenerate(
        body: RegenerateRequest, request: Request
    ) -> dict[str, object]:
        """Regenerate an image from the analysis prompt."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.orchestrator.regenerate(
            prompt=body.prompt, provider=body.provider
        )
        return _step_view(state_container, result)

    @app.post("/workflow/improve")
    async def improve(body: PromptRequest, request: Request) -> dict[str, object]:
        """Refine the current chain tip."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.orchestrator.improve(body.prompt)
        return _step_view(state_container, result)

    @app.post("/workflow/export")
    async def export_image(request: Request) -> dict[str, str]:
        """Save the current image to the export directory."""
        state_container: AppContainer = request.app.state.container
        path = state_container.orchestrator.export_image(
            Path(state_container.settings.export_dir)
        )
        return {"path": str(path)}

    @app.post("/workflow/reset")
    async def reset(request: Request) -> dict[str, object]:
        """Drop the current session."""
        state_container: AppContainer = request.app.state.container
        state_container.orchestrator.reset()
        return _workflow_view(state_container)

    return app


def _error_status(exc: WorkflowError) -> tuple[int, str]:
    for error_type, status in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500, "Workflow error"


def _step_view(container: AppContainer, result: StepResult) -> dict[str, object]:
    view = _workflow_view(container)
    view["status"] = result.status
    return view


def _workflow_view(container: AppContainer) -> dict[str, object]:
    """Serialize the state the way it is persisted, plus derived UI flags."""
    store = container.workflow_store
    state = store.state
    record = container.persistence.snapshot(state)
    recovery_prompt = container.recovery.prompt()
    current_image = None
    tip_id = None
    if state.regeneration is not None:
        current_image = to_data_url(store.current_image())
        tip_id = store.current_tip()
    return {
        "state": record.model_dump(mode="json", by_alias=True),
        "effectivePrompt": store.effective_prompt(),
        "tipId": tip_id,
        "currentImage": current_image,
        "availableSteps": asdict(store.available_steps()),
        "busySteps": sorted(step.value for step in container.orchestrator.busy_steps),
        "recovery": asdict(recovery_prompt) if recovery_prompt else None,
    }
