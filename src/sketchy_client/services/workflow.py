"""Owner of the current workflow state."""

from sketchy_client.domain import workflow
from sketchy_client.domain.workflow import (
    Analysis,
    AvailableSteps,
    ImprovementLink,
    Regeneration,
    UploadedImageRef,
    WorkflowState,
)


class WorkflowStore:
    """Holds the single workflow state; every change goes through a transition."""

    def __init__(self, state: WorkflowState | None = None) -> None:
        self._state = state or WorkflowState()

    @property
    def state(self) -> WorkflowState:
        return self._state

    def record_upload(
        self,
        images: list[UploadedImageRef],
        server_session_id: str | None = None,
    ) -> WorkflowState:
        self._state = workflow.record_upload(images, server_session_id)
        return self._state

    def select_image(self, image_id: str) -> WorkflowState:
        self._state = workflow.select_image(self._state, image_id)
        return self._state

    def record_analysis(self, analysis: Analysis) -> WorkflowState:
        self._state = workflow.record_analysis(self._state, analysis)
        return self._state

    def record_regeneration(
        self, regeneration: Regeneration, prompt: str | None = None
    ) -> WorkflowState:
        self._state = workflow.record_regeneration(self._state, regeneration, prompt)
        return self._state

    def record_improvement(self, link: ImprovementLink) -> WorkflowState:
        self._state = workflow.record_improvement(self._state, link)
        return self._state

    def edit_prompt(self, text: str) -> WorkflowState:
        self._state = workflow.edit_prompt(self._state, text)
        return self._state

    def current_tip(self) -> str:
        return workflow.current_tip(self._state)

    def current_image(self) -> bytes:
        return workflow.current_image(self._state)

    def effective_prompt(self) -> str | None:
        return workflow.effective_prompt(self._state)

    def available_steps(self) -> AvailableSteps:
        return workflow.available_steps(self._state)

    def reset(self) -> WorkflowState:
        """Drop the whole session."""
        self._state = WorkflowState()
        return self._state

    def commit(self, state: WorkflowState) -> WorkflowState:
        """Replace the state with one that has already been saved."""
        self._state = state
        return self._state
