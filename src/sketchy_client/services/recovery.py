"""Recovery of a persisted session after a restart."""

import logging
from dataclasses import dataclass

from sketchy_client.domain.snapshots import PersistedImage, PersistedRecord
from sketchy_client.domain.workflow import ImageFile, UploadedImageRef, WorkflowState
from sketchy_client.errors import PreconditionFailed
from sketchy_client.services.persistence import PersistenceAdapter, restore_state
from sketchy_client.services.workflow import WorkflowStore

RECOVERY_MESSAGE = (
    "To restore your session, please re-select the same files you uploaded "
    "previously."
)

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingFile:
    """A stored image waiting for the user to re-supply its bytes."""

    display_name: str
    mime_type: str


@dataclass(frozen=True)
class RecoveryPrompt:
    """Asks the user to re-select the files of the previous session."""

    text: str
    files: tuple[PendingFile, ...]


class SessionRecovery:
    """Rebuilds the workflow state from the last persisted snapshot."""

    def __init__(self, store: WorkflowStore, persistence: PersistenceAdapter) -> None:
        self.store = store
        self.persistence = persistence
        self._pending: PersistedRecord | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def begin(self) -> RecoveryPrompt | None:
        """Load the snapshot and return a re-selection prompt if one is needed."""
        self._pending = None
        record = self.persistence.load()
        if record is None or not record.session.uploaded_images:
            self.store.reset()
            return None
        self._pending = record
        _logger.info(
            "Session recovery pending for %s file(s)",
            len(record.session.uploaded_images),
        )
        return self.prompt()

    def prompt(self) -> RecoveryPrompt | None:
        """Return the prompt for the pending recovery, if any."""
        if self._pending is None:
            return None
        return RecoveryPrompt(
            text=RECOVERY_MESSAGE,
            files=tuple(
                PendingFile(display_name=image.display_name, mime_type=image.mime_type)
                for image in self._pending.session.uploaded_images
            ),
        )

    def rebind(self, files: list[ImageFile]) -> WorkflowState:
        """Match re-selected files to stored entries and restore the session."""
        if self._pending is None:
            raise PreconditionFailed("There is no session waiting to be restored.")
        record = self._pending
        images: list[UploadedImageRef] = []
        for stored in record.session.uploaded_images:
            file = _match(stored, files)
            if file is None:
                continue
            images.append(
                UploadedImageRef(
                    id=stored.id,
                    file_handle=file,
                    display_name=stored.display_name,
                    mime_type=stored.mime_type,
                )
            )
        dropped = len(record.session.uploaded_images) - len(images)
        if dropped:
            _logger.info("Session recovery dropped %s unmatched file(s)", dropped)
        state = restore_state(record, images)
        self.persistence.persist(state)
        self.store.commit(state)
        self._pending = None
        return state

    def discard(self) -> None:
        """Forget the pending recovery."""
        self._pending = None


def _match(stored: PersistedImage, files: list[ImageFile]) -> ImageFile | None:
    for file in files:
        if file.name == stored.display_name and file.mime_type == stored.mime_type:
            return file
    return None
