"""Tests for the step orchestrator."""

import asyncio
import json
from datetime import UTC, datetime

import pytest

from sketchy_client.domain.api_models import ImageResponse
from sketchy_client.errors import (
    InvalidInput,
    PersistenceFailure,
    PreconditionFailed,
    RemoteFailure,
    StepInProgress,
    TransportFailure,
)
from sketchy_client.services.images import export_filename
from sketchy_client.services.orchestrator import Step
from tests.conftest import (
    PNG_BYTES,
    FakeSketchyApiClient,
    InMemoryStateStore,
    build_orchestrator,
    image_file,
)


def _run_scenario_a(client: FakeSketchyApiClient, state_store=None):  # type: ignore[no-untyped-def]
    orchestrator = build_orchestrator(client, state_store)
    asyncio.run(orchestrator.upload([image_file("cat.png"), image_file("dog.png")]))
    orchestrator.select("b")
    asyncio.run(orchestrator.analyze())
    asyncio.run(orchestrator.regenerate(prompt="a cat, blue background"))
    asyncio.run(orchestrator.improve("make it brighter"))
    return orchestrator


def test_scenario_first_improvement_targets_original() -> None:
    client = FakeSketchyApiClient()

    orchestrator = _run_scenario_a(client)

    assert client.calls == [
        ("upload", "cat.png", "dog.png"),
        ("analyze", "b", "openai"),
        ("regenerate", "an1", "a cat, blue background", "stabilityai"),
        ("from_original", "r1", "make it brighter"),
    ]
    assert orchestrator.store.current_tip() == "i1"


def test_scenario_second_improvement_targets_previous_link() -> None:
    client = FakeSketchyApiClient()
    orchestrator = _run_scenario_a(client)

    result = asyncio.run(orchestrator.improve("add a hat"))

    assert client.calls[-1] == ("from_improved", "i1", "add a hat")
    assert result.status == "Improvement complete. New ID: i2"
    assert orchestrator.store.current_tip() == "i2"


def test_analyze_without_selection_makes_no_network_call() -> None:
    client = FakeSketchyApiClient()
    orchestrator = build_orchestrator(client)
    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    client.calls.clear()

    with pytest.raises(PreconditionFailed):
        asyncio.run(orchestrator.analyze())

    assert client.calls == []


def test_regenerate_failure_surfaces_server_message() -> None:
    client = FakeSketchyApiClient(
        failures={"regenerate": RemoteFailure("provider timeout", status_code=503)}
    )
    orchestrator = build_orchestrator(client)
    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    orchestrator.select("a")
    asyncio.run(orchestrator.analyze())
    before = orchestrator.store.state

    with pytest.raises(RemoteFailure) as exc_info:
        asyncio.run(orchestrator.regenerate())

    assert exc_info.value.message == "provider timeout"
    assert orchestrator.store.state == before
    assert orchestrator.store.state.regeneration is None
    assert orchestrator.busy_steps == frozenset()


def test_failed_regeneration_keeps_prior_result() -> None:
    client = FakeSketchyApiClient()
    orchestrator = _run_scenario_a(client)
    previous = orchestrator.store.state.regeneration
    client.failures["regenerate"] = TransportFailure("Regeneration failed")

    with pytest.raises(TransportFailure):
        asyncio.run(orchestrator.regenerate(prompt="new prompt"))

    assert orchestrator.store.state.regeneration == previous
    assert orchestrator.store.current_tip() == "i1"


def test_failure_does_not_persist() -> None:
    state_store = InMemoryStateStore()
    client = FakeSketchyApiClient(failures={"analyze": RemoteFailure("nope")})
    orchestrator = build_orchestrator(client, state_store)
    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    orchestrator.select("a")
    writes = state_store.writes

    with pytest.raises(RemoteFailure):
        asyncio.run(orchestrator.analyze())

    assert state_store.writes == writes


def test_failed_save_leaves_state_untouched() -> None:
    state_store = InMemoryStateStore()
    orchestrator = build_orchestrator(FakeSketchyApiClient(), state_store)
    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    orchestrator.select("a")
    snapshot = state_store.values["sketchyState"]
    state_store.write_error = OSError("disk full")

    with pytest.raises(PersistenceFailure) as exc_info:
        asyncio.run(orchestrator.analyze())

    assert exc_info.value.message == "Could not save the session."
    assert orchestrator.store.state.analysis is None
    assert state_store.values["sketchyState"] == snapshot


def test_success_persists_snapshot() -> None:
    state_store = InMemoryStateStore()

    _run_scenario_a(FakeSketchyApiClient(), state_store)

    payload = json.loads(state_store.values["sketchyState"])
    assert payload["analysis"] == {"id": "an1", "promptDescription": "a cat"}
    assert payload["chain"]["links"][0]["id"] == "i1"


def test_empty_inputs_are_rejected_before_network() -> None:
    client = FakeSketchyApiClient()
    orchestrator = build_orchestrator(client)

    with pytest.raises(InvalidInput):
        asyncio.run(orchestrator.upload([]))

    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    orchestrator.select("a")
    asyncio.run(orchestrator.analyze())
    calls = list(client.calls)

    with pytest.raises(InvalidInput):
        asyncio.run(orchestrator.regenerate(prompt="   "))
    asyncio.run(orchestrator.regenerate())
    with pytest.raises(InvalidInput):
        asyncio.run(orchestrator.improve(""))

    assert client.calls == [*calls, ("regenerate", "an1", "a cat", "stabilityai")]


def test_improve_before_regeneration_fails_fast() -> None:
    client = FakeSketchyApiClient()
    orchestrator = build_orchestrator(client)

    with pytest.raises(PreconditionFailed):
        asyncio.run(orchestrator.improve("brighter"))

    assert client.calls == []


def test_regenerate_uses_edited_prompt() -> None:
    client = FakeSketchyApiClient()
    orchestrator = build_orchestrator(client)
    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    orchestrator.select("a")
    asyncio.run(orchestrator.analyze())

    orchestrator.edit_prompt("a cat in space")
    asyncio.run(orchestrator.regenerate(provider="openai"))

    assert client.calls[-1] == ("regenerate", "an1", "a cat in space", "openai")
    assert orchestrator.store.state.analysis is not None
    assert orchestrator.store.state.analysis.prompt_description == "a cat"


def test_new_regeneration_restarts_chain_from_original() -> None:
    client = FakeSketchyApiClient()
    orchestrator = _run_scenario_a(client)
    client.regeneration = ImageResponse(id="r2", data=client.regeneration.data)

    asyncio.run(orchestrator.regenerate())
    asyncio.run(orchestrator.improve("again"))

    assert client.calls[-1] == ("from_original", "r2", "again")


def test_concurrent_trigger_of_same_step_is_rejected() -> None:
    class SlowClient(FakeSketchyApiClient):
        async def analyze(self, image_id: str, provider: str):  # type: ignore[no-untyped-def]
            await asyncio.sleep(0.01)
            return await super().analyze(image_id, provider)

    client = SlowClient()
    orchestrator = build_orchestrator(client)
    asyncio.run(orchestrator.upload([image_file("cat.png")]))
    orchestrator.select("a")

    async def double_click() -> list[object]:
        first = asyncio.create_task(orchestrator.analyze())
        await asyncio.sleep(0)
        assert orchestrator.busy_steps == frozenset({Step.ANALYZE})
        second = asyncio.create_task(orchestrator.analyze())
        return await asyncio.gather(first, second, return_exceptions=True)

    results = asyncio.run(double_click())

    assert isinstance(results[1], StepInProgress)
    assert [call[0] for call in client.calls].count("analyze") == 1
    assert orchestrator.busy_steps == frozenset()


def test_improvement_is_dropped_when_regeneration_lands_first() -> None:
    class SlowImproveClient(FakeSketchyApiClient):
        async def improve_from_improved(self, link_id: str, prompt: str):  # type: ignore[no-untyped-def]
            await asyncio.sleep(0.01)
            return await super().improve_from_improved(link_id, prompt)

    client = SlowImproveClient()
    orchestrator = _run_scenario_a(client)

    async def race() -> list[object]:
        improving = asyncio.create_task(orchestrator.improve("sharper"))
        await asyncio.sleep(0)
        await orchestrator.regenerate()
        return await asyncio.gather(improving, return_exceptions=True)

    results = asyncio.run(race())

    assert isinstance(results[0], PreconditionFailed)
    assert orchestrator.store.state.chain.links == ()
    assert orchestrator.store.current_tip() == "r1"


def test_upload_discards_previous_pipeline() -> None:
    client = FakeSketchyApiClient()
    orchestrator = _run_scenario_a(client)
    client.upload_ids = ["c"]

    result = asyncio.run(orchestrator.upload([image_file("new.png")]))

    assert result.status == "1 file(s) uploaded. Session ID: s1"
    assert result.state.analysis is None
    assert result.state.chain is None


def test_submit_files_rebinds_pending_recovery() -> None:
    state_store = InMemoryStateStore()
    _run_scenario_a(FakeSketchyApiClient(), state_store)
    client = FakeSketchyApiClient()
    orchestrator = build_orchestrator(client, state_store)
    assert orchestrator.recovery.begin() is not None

    result = asyncio.run(orchestrator.submit_files([image_file("dog.png")]))

    assert client.calls == []
    assert result.status == "1 file(s) restored."
    assert result.state.session.selected_image_id == "b"
    assert orchestrator.store.current_tip() == "i1"


def test_submit_files_uploads_without_pending_recovery() -> None:
    client = FakeSketchyApiClient()
    orchestrator = build_orchestrator(client)

    asyncio.run(orchestrator.submit_files([image_file("cat.png")]))

    assert client.calls == [("upload", "cat.png")]


def test_export_image_writes_tip(tmp_path) -> None:
    orchestrator = _run_scenario_a(FakeSketchyApiClient())

    path = orchestrator.export_image(tmp_path)

    assert path.read_bytes() == PNG_BYTES + b"i1"
    assert path.name.startswith("sketchy-image-")


def test_export_filename_uses_epoch_millis() -> None:
    moment = datetime(2024, 1, 1, tzinfo=UTC)

    assert export_filename(moment) == "sketchy-image-1704067200000.png"


def test_reset_clears_state_and_snapshot() -> None:
    state_store = InMemoryStateStore()
    orchestrator = _run_scenario_a(FakeSketchyApiClient(), state_store)

    orchestrator.reset()

    payload = json.loads(state_store.values["sketchyState"])
    assert payload["session"]["uploadedImages"] == []
    assert orchestrator.store.state.regeneration is None
