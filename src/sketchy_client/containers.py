"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from sketchy_client.adapters.file_state_store import FileStateStore
from sketchy_client.adapters.sketchy_api_client import (
    HttpxSketchyApiClient,
    SketchyApiClient,
)
from sketchy_client.adapters.supabase_state_store import SupabaseStateStore
from sketchy_client.config import Settings
from sketchy_client.services.orchestrator import StepOrchestrator
from sketchy_client.services.persistence import KeyValueStore, PersistenceAdapter
from sketchy_client.services.recovery import SessionRecovery
from sketchy_client.services.workflow import WorkflowStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    api_client: SketchyApiClient
    workflow_store: WorkflowStore
    persistence: PersistenceAdapter
    recovery: SessionRecovery
    orchestrator: StepOrchestrator
    close_resources: Callable[[], Awaitable[None]]


def build_state_store(settings: Settings) -> KeyValueStore:
    """Create the durable store selected by configuration."""
    if settings.state_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase state backend requires url and service key")
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseStateStore(client, table=settings.supabase_table)
    return FileStateStore(Path(settings.state_dir))


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    persistence = PersistenceAdapter(
        store=build_state_store(resolved_settings),
        key=resolved_settings.session_key,
    )
    workflow_store = WorkflowStore()
    recovery = SessionRecovery(workflow_store, persistence)
    api_client = HttpxSketchyApiClient.create(
        base_url=resolved_settings.api_base_url,
        timeout=resolved_settings.request_timeout_seconds,
    )
    orchestrator = StepOrchestrator(
        store=workflow_store,
        persistence=persistence,
        client=api_client,
        recovery=recovery,
        analysis_provider=resolved_settings.analysis_provider,
        generation_provider=resolved_settings.generation_provider,
    )

    async def close_resources() -> None:
        await api_client.close()

    return AppContainer(
        settings=resolved_settings,
        api_client=api_client,
        workflow_store=workflow_store,
        persistence=persistence,
        recovery=recovery,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
