"""Domain models and pure transitions for the sketch workflow."""

from dataclasses import dataclass, field, replace

from sketchy_client.errors import InvalidInput, NotFound, PreconditionFailed


@dataclass(frozen=True)
class ImageFile:
    """Raw image bytes supplied by the user; never persisted."""

    name: str
    mime_type: str
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class UploadedImageRef:
    """An uploaded image as known to the backend."""

    id: str
    file_handle: ImageFile | None
    display_name: str
    mime_type: str


@dataclass(frozen=True)
class Session:
    """Images uploaded together plus the current selection."""

    uploaded_images: tuple[UploadedImageRef, ...] = ()
    selected_image_id: str | None = None
    server_session_id: str | None = None

    def find(self, image_id: str) -> UploadedImageRef | None:
        """Return the uploaded image with the given id, if present."""
        for image in self.uploaded_images:
            if image.id == image_id:
                return image
        return None


@dataclass(frozen=True)
class Analysis:
    """Textual description produced for a selected image."""

    id: str
    prompt_description: str


@dataclass(frozen=True)
class Regeneration:
    """Image generated from an analysis prompt."""

    id: str
    image_data: bytes = field(repr=False)


@dataclass(frozen=True)
class ImprovementLink:
    """One refinement step built from the previous chain tip."""

    id: str
    image_data: bytes = field(repr=False)


@dataclass(frozen=True)
class ImprovementChain:
    """Successive refinements rooted at a regeneration."""

    origin_id: str
    links: tuple[ImprovementLink, ...] = ()

    @property
    def tip_id(self) -> str:
        """Return the id the next improvement builds on."""
        if self.links:
            return self.links[-1].id
        return self.origin_id


@dataclass(frozen=True)
class WorkflowState:
    """Aggregate root of the upload → analyze → regenerate → improve pipeline."""

    session: Session = field(default_factory=Session)
    analysis: Analysis | None = None
    regeneration: Regeneration | None = None
    chain: ImprovementChain | None = None
    prompt_override: str | None = None


@dataclass(frozen=True)
class AvailableSteps:
    """Which workflow controls the UI layer should enable."""

    can_select: bool
    can_analyze: bool
    can_regenerate: bool
    can_improve: bool
    can_export: bool


def record_upload(
    images: list[UploadedImageRef] | tuple[UploadedImageRef, ...],
    server_session_id: str | None = None,
) -> WorkflowState:
    """Start a new batch, invalidating everything downstream."""
    if not images:
        raise InvalidInput("At least one image is required.")
    session = Session(
        uploaded_images=tuple(images),
        selected_image_id=None,
        server_session_id=server_session_id,
    )
    return WorkflowState(session=session)


def select_image(state: WorkflowState, image_id: str) -> WorkflowState:
    """Select an uploaded image without touching downstream results."""
    if state.session.find(image_id) is None:
        raise NotFound(f"Image {image_id} is not part of this session.")
    session = replace(state.session, selected_image_id=image_id)
    return replace(state, session=session)


def record_analysis(state: WorkflowState, analysis: Analysis) -> WorkflowState:
    """Commit an analysis and clear any regeneration built on the old one."""
    if state.session.selected_image_id is None:
        raise PreconditionFailed("Select an image before analyzing.")
    return replace(
        state,
        analysis=analysis,
        regeneration=None,
        chain=None,
        prompt_override=None,
    )


def record_regeneration(
    state: WorkflowState,
    regeneration: Regeneration,
    prompt: str | None = None,
) -> WorkflowState:
    """Commit a regeneration and start a fresh improvement chain."""
    if state.analysis is None:
        raise PreconditionFailed("Analyze an image before regenerating.")
    override = state.prompt_override
    if prompt is not None:
        override = None if prompt == state.analysis.prompt_description else prompt
    return replace(
        state,
        regeneration=regeneration,
        chain=ImprovementChain(origin_id=regeneration.id),
        prompt_override=override,
    )


def record_improvement(state: WorkflowState, link: ImprovementLink) -> WorkflowState:
    """Append a refinement to the chain."""
    if state.regeneration is None:
        raise PreconditionFailed("Regenerate an image before improving it.")
    chain = state.chain or ImprovementChain(origin_id=state.regeneration.id)
    return replace(state, chain=replace(chain, links=(*chain.links, link)))


def edit_prompt(state: WorkflowState, text: str) -> WorkflowState:
    """Store a local edit of the analysis prompt."""
    if state.analysis is None:
        raise PreconditionFailed("There is no analysis prompt to edit.")
    override = None if text == state.analysis.prompt_description else text
    return replace(state, prompt_override=override)


def current_tip(state: WorkflowState) -> str:
    """Return the id targeted by the next improvement."""
    if state.regeneration is None:
        raise PreconditionFailed("No regenerated image exists yet.")
    if state.chain is None:
        return state.regeneration.id
    return state.chain.tip_id


def current_image(state: WorkflowState) -> bytes:
    """Return the image bytes at the chain tip."""
    if state.regeneration is None:
        raise PreconditionFailed("No regenerated image exists yet.")
    if state.chain is not None and state.chain.links:
        return state.chain.links[-1].image_data
    return state.regeneration.image_data


def effective_prompt(state: WorkflowState) -> str | None:
    """Return the prompt a regeneration would use."""
    if state.prompt_override is not None:
        return state.prompt_override
    if state.analysis is None:
        return None
    return state.analysis.prompt_description


def available_steps(state: WorkflowState) -> AvailableSteps:
    """Derive which controls are usable from the committed state."""
    selected = state.session.find(state.session.selected_image_id or "")
    has_regeneration = state.regeneration is not None
    return AvailableSteps(
        can_select=bool(state.session.uploaded_images),
        can_analyze=selected is not None,
        can_regenerate=state.analysis is not None,
        can_improve=has_regeneration,
        can_export=has_regeneration,
    )
