"""Persisted layout of the workflow state."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PersistedImage(_SnapshotModel):
    """Uploaded image metadata without its file handle."""

    id: str
    display_name: str
    mime_type: str


class PersistedSession(_SnapshotModel):
    uploaded_images: list[PersistedImage] = Field(default_factory=list)
    selected_image_id: str | None = None
    server_session_id: str | None = None


class PersistedAnalysis(_SnapshotModel):
    id: str
    prompt_description: str


class PersistedImageResult(_SnapshotModel):
    """A regeneration or chain link with its image as a data URI."""

    id: str
    image_data: str


class PersistedChain(_SnapshotModel):
    origin_id: str
    links: list[PersistedImageResult] = Field(default_factory=list)


class PersistedRecord(_SnapshotModel):
    """JSON-shaped snapshot stored under the session key."""

    session: PersistedSession = Field(default_factory=PersistedSession)
    analysis: PersistedAnalysis | None = None
    regeneration: PersistedImageResult | None = None
    chain: PersistedChain | None = None
    prompt_override: str | None = None
