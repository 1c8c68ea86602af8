"""Snapshot persistence for the workflow state."""

import logging
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from sketchy_client.domain.snapshots import (
    PersistedAnalysis,
    PersistedChain,
    PersistedImage,
    PersistedImageResult,
    PersistedRecord,
    PersistedSession,
)
from sketchy_client.domain.workflow import (
    Analysis,
    ImprovementChain,
    ImprovementLink,
    Regeneration,
    Session,
    UploadedImageRef,
    WorkflowState,
)
from sketchy_client.errors import PersistenceCorrupt, PersistenceFailure
from sketchy_client.services.images import from_data_url, to_data_url

DEFAULT_SESSION_KEY = "sketchyState"

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Durable string storage keyed by name."""

    def read(self, key: str) -> str | None:
        """Return the stored value, if present."""

    def write(self, key: str, value: str) -> None:
        """Store a value, overwriting any previous one."""


@dataclass
class PersistenceAdapter:
    """Saves and loads workflow snapshots under a single key."""

    store: KeyValueStore
    key: str = DEFAULT_SESSION_KEY

    def snapshot(self, state: WorkflowState) -> PersistedRecord:
        """Copy the state into its persisted shape, dropping file handles."""
        session = PersistedSession(
            uploaded_images=[
                PersistedImage(
                    id=image.id,
                    display_name=image.display_name,
                    mime_type=image.mime_type,
                )
                for image in state.session.uploaded_images
            ],
            selected_image_id=state.session.selected_image_id,
            server_session_id=state.session.server_session_id,
        )
        analysis = None
        if state.analysis is not None:
            analysis = PersistedAnalysis(
                id=state.analysis.id,
                prompt_description=state.analysis.prompt_description,
            )
        regeneration = None
        if state.regeneration is not None:
            regeneration = PersistedImageResult(
                id=state.regeneration.id,
                image_data=to_data_url(state.regeneration.image_data),
            )
        chain = None
        if state.chain is not None:
            chain = PersistedChain(
                origin_id=state.chain.origin_id,
                links=[
                    PersistedImageResult(
                        id=link.id, image_data=to_data_url(link.image_data)
                    )
                    for link in state.chain.links
                ],
            )
        return PersistedRecord(
            session=session,
            analysis=analysis,
            regeneration=regeneration,
            chain=chain,
            prompt_override=state.prompt_override,
        )

    def save(self, record: PersistedRecord) -> None:
        """Write the record, replacing the previous snapshot."""
        try:
            self.store.write(self.key, record.model_dump_json(by_alias=True))
        except Exception as exc:
            _logger.warning("Failed to save session %s: %s", self.key, exc)
            raise PersistenceFailure("Could not save the session.") from exc

    def load(self) -> PersistedRecord | None:
        """Read the stored record; missing or corrupt snapshots yield None."""
        try:
            raw = self.store.read(self.key)
            if raw is None:
                return None
            return parse_record(raw)
        except PersistenceCorrupt as exc:
            _logger.warning("Ignoring stored session %s: %s", self.key, exc.message)
            return None

    def persist(self, state: WorkflowState) -> None:
        """Snapshot and save in one step."""
        self.save(self.snapshot(state))


def parse_record(raw: str) -> PersistedRecord:
    """Parse a stored snapshot, raising PersistenceCorrupt on bad content."""
    try:
        record = PersistedRecord.model_validate_json(raw)
    except ValidationError as exc:
        raise PersistenceCorrupt(
            f"Snapshot failed validation ({exc.error_count()} errors)"
        ) from exc
    images = [record.regeneration] if record.regeneration else []
    if record.chain:
        images.extend(record.chain.links)
    for image in images:
        try:
            from_data_url(image.image_data)
        except ValueError as exc:
            raise PersistenceCorrupt(f"Image {image.id} is not a data URL") from exc
    return record


def restore_state(
    record: PersistedRecord, images: list[UploadedImageRef]
) -> WorkflowState:
    """Rebuild a workflow state from a record and re-bound images."""
    selected = record.session.selected_image_id
    if selected not in {image.id for image in images}:
        selected = None
    session = Session(
        uploaded_images=tuple(images),
        selected_image_id=selected,
        server_session_id=record.session.server_session_id,
    )
    analysis = None
    if record.analysis is not None:
        analysis = Analysis(
            id=record.analysis.id,
            prompt_description=record.analysis.prompt_description,
        )
    regeneration = None
    chain = None
    if analysis is not None and record.regeneration is not None:
        regeneration = Regeneration(
            id=record.regeneration.id,
            image_data=from_data_url(record.regeneration.image_data),
        )
        chain = ImprovementChain(origin_id=regeneration.id)
        if record.chain is not None and record.chain.origin_id == regeneration.id:
            chain = ImprovementChain(
                origin_id=regeneration.id,
                links=tuple(
                    ImprovementLink(id=link.id, image_data=from_data_url(link.image_data))
                    for link in record.chain.links
                ),
            )
    return WorkflowState(
        session=session,
        analysis=analysis,
        regeneration=regeneration,
        chain=chain,
        prompt_override=record.prompt_override if analysis is not None else None,
    )
