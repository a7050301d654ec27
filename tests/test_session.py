from __future__ import annotations

import asyncio

import pytest

from app.core.errors import GenerationError
from app.schemas.session import SessionPhase
from app.schemas.simulation import ScenarioResult
from app.services.session import (
    REVEAL_FAILED_MESSAGE,
    SETUP_FAILED_MESSAGE,
    ArchiveLoaded,
    ChoiceSelected,
    RequestReveal,
    RequestScenario,
    ResetRequested,
    ScenarioReceived,
    SessionController,
    SessionRegistry,
    SessionState,
    StartRequested,
    UndoRequested,
    new_record_id,
    record_from_scenario,
    transition,
)
from tests.factories import FakeGenerator, fast_progress, make_reveal, make_revealed_record, make_scenario


def _setup_ready_state(token: int = 1) -> SessionState:
    return SessionState(SessionPhase.SETUP_READY, record_from_scenario(make_scenario(), "r1"), token)


# ---------- pure transitions ----------

def test_start_from_idle_requests_scenario() -> None:
    state, effects = transition(SessionState(), StartRequested("negotiation"))
    assert state.phase is SessionPhase.AWAITING_SETUP
    assert effects == (RequestScenario(state.token, "negotiation"),)


def test_start_outside_idle_is_ignored() -> None:
    ready = _setup_ready_state()
    assert transition(ready, StartRequested("again")) == (ready, ())


def test_stale_scenario_response_is_ignored() -> None:
    waiting, _ = transition(SessionState(), StartRequested(""))
    record = record_from_scenario(make_scenario(), "r1")
    stale = ScenarioReceived(waiting.token - 1, record)
    assert transition(waiting, stale) == (waiting, ())


def test_unknown_choice_is_ignored() -> None:
    ready = _setup_ready_state()
    assert transition(ready, ChoiceSelected(99)) == (ready, ())


def test_select_issues_reveal_for_the_chosen_option() -> None:
    ready = _setup_ready_state()
    state, effects = transition(ready, ChoiceSelected(3))
    assert state.phase is SessionPhase.AWAITING_REVEAL
    assert len(effects) == 1
    assert isinstance(effects[0], RequestReveal)
    assert effects[0].choice.id == 3
    assert effects[0].token == state.token


def test_undo_only_applies_when_revealed() -> None:
    ready = _setup_ready_state()
    assert transition(ready, UndoRequested()) == (ready, ())


def test_reset_bumps_token_from_any_state() -> None:
    waiting, _ = transition(SessionState(), StartRequested(""))
    state, effects = transition(waiting, ResetRequested())
    assert state.phase is SessionPhase.IDLE
    assert state.record is None
    assert state.token == waiting.token + 1
    assert effects == ()


def test_archive_load_requires_revealed_record() -> None:
    unrevealed = record_from_scenario(make_scenario(), "r1")
    assert transition(SessionState(), ArchiveLoaded(unrevealed)) == (SessionState(), ())

    state, _ = transition(_setup_ready_state(), ArchiveLoaded(make_revealed_record("old")))
    assert state.phase is SessionPhase.REVEALED
    assert state.record.id == "old"


def test_record_defaults_for_empty_scenario() -> None:
    record = record_from_scenario(ScenarioResult.model_validate({}), "r1")
    assert record.title == "Unknown Simulation"
    assert record.role == "Participant"
    assert record.scene == ""
    assert record.micro_expression_notes == ""
    assert record.choices == ()
    assert not record.is_revealed


def test_record_ids_are_unique() -> None:
    ids = {new_record_id() for _ in range(50)}
    assert len(ids) == 50


# ---------- controller ----------

def test_empty_scenario_response_gets_defaults() -> None:
    generator = FakeGenerator(scenarios=[ScenarioResult()])
    controller = SessionController(generator, progress=fast_progress())

    async def scenario() -> None:
        assert await controller.start_simulation("")
        assert generator.scenario_calls == [""]

    asyncio.run(scenario())
    assert controller.phase is SessionPhase.SETUP_READY
    assert controller.current.title == "Unknown Simulation"
    assert controller.current.role == "Participant"
    assert controller.current.choices == ()


def test_full_flow_start_select_undo_reset(controller: SessionController, generator: FakeGenerator) -> None:
    generator.reveals.append(make_reveal(language="English", conflict="Negotiation"))

    async def scenario() -> None:
        assert controller.phase is SessionPhase.IDLE
        await controller.start_simulation("negotiation")
        assert controller.phase is SessionPhase.SETUP_READY
        assert len(controller.current.choices) == 3
        assert controller.progress.value == 100.0
        record_id = controller.current.id

        await controller.select_choice(2)
        assert controller.phase is SessionPhase.REVEALED
        assert controller.current.selected_choice_id == 2
        categories = controller.archive.list_categories()
        assert [c.key for c in categories] == [("English", "Negotiation")]
        assert [r.id for r in categories[0].records] == [record_id]

        await controller.undo()
        assert controller.phase is SessionPhase.SETUP_READY
        assert controller.current.id == record_id
        assert not controller.current.is_revealed
        # archived copy keeps its reveal
        assert controller.archive.list_categories() == categories
        assert controller.archive.find_record(record_id).is_revealed

        await controller.reset()
        assert controller.phase is SessionPhase.IDLE
        assert controller.current is None
        assert controller.archive.list_categories() == categories

    asyncio.run(scenario())


def test_select_while_reveal_in_flight_is_a_no_op(controller: SessionController, generator: FakeGenerator) -> None:
    async def scenario() -> None:
        await controller.start_simulation("x")
        generator.gate = asyncio.Event()

        pending = asyncio.create_task(controller.select_choice(1))
        await asyncio.sleep(0)
        assert controller.phase is SessionPhase.AWAITING_REVEAL

        assert await controller.select_choice(2) is False
        assert await controller.start_simulation("y") is False
        assert generator.reveal_calls == [(controller.current.id, 1)]

        generator.gate.set()
        assert await pending is True
        assert controller.phase is SessionPhase.REVEALED
        assert controller.current.selected_choice_id == 1

    asyncio.run(scenario())


def test_setup_failure_returns_to_idle_with_notification(generator: FakeGenerator) -> None:
    generator.scenarios.append(GenerationError("boom"))
    controller = SessionController(generator, progress=fast_progress())

    asyncio.run(controller.start_simulation("x"))
    assert controller.phase is SessionPhase.IDLE
    assert controller.current is None
    assert not controller.progress.active
    assert controller.take_notification() == SETUP_FAILED_MESSAGE
    assert controller.take_notification() is None


def test_reveal_failure_keeps_setup_record_and_allows_retry(controller: SessionController, generator: FakeGenerator) -> None:
    generator.reveals.append(GenerationError("bad json"))

    async def scenario() -> None:
        await controller.start_simulation("x")
        before = controller.current

        await controller.select_choice(3)
        assert controller.phase is SessionPhase.SETUP_READY
        assert controller.current == before
        assert len(controller.archive) == 0
        assert controller.take_notification() == REVEAL_FAILED_MESSAGE

        await controller.select_choice(3)
        assert controller.phase is SessionPhase.REVEALED
        assert controller.current.id == before.id
        assert len(controller.archive) == 1

    asyncio.run(scenario())


def test_response_after_reset_is_dropped(controller: SessionController, generator: FakeGenerator) -> None:
    async def scenario() -> None:
        generator.gate = asyncio.Event()
        pending = asyncio.create_task(controller.start_simulation("slow"))
        await asyncio.sleep(0)
        assert controller.phase is SessionPhase.AWAITING_SETUP

        await controller.reset()
        generator.gate.set()
        await pending
        assert controller.phase is SessionPhase.IDLE
        assert controller.current is None
        assert controller.notification is None

    asyncio.run(scenario())


def test_load_from_archive_jumps_to_revealed(controller: SessionController) -> None:
    async def scenario() -> None:
        await controller.start_simulation("x")
        await controller.select_choice(1)
        archived = controller.current
        await controller.reset()
        await controller.start_simulation("y")
        assert controller.phase is SessionPhase.SETUP_READY

        assert await controller.load_from_archive(archived)
        assert controller.phase is SessionPhase.REVEALED
        assert controller.current == archived

    asyncio.run(scenario())


def test_re_reveal_after_undo_keeps_one_archive_entry(controller: SessionController, generator: FakeGenerator) -> None:
    generator.reveals.extend([make_reveal(conflict="Social"), make_reveal(conflict="Leadership")])

    async def scenario() -> None:
        await controller.start_simulation("x")
        await controller.select_choice(1)
        await controller.undo()
        await controller.select_choice(2)

    asyncio.run(scenario())
    categories = controller.archive.list_categories()
    assert [c.key for c in categories] == [("English", "Leadership")]
    assert len(controller.archive) == 1
    assert categories[0].records[0].selected_choice_id == 2


def test_registry_creates_and_ends_sessions(generator: FakeGenerator) -> None:
    registry = SessionRegistry(controller_factory=lambda: SessionController(generator))
    first = registry.get("abc")
    assert registry.get("abc") is first
    assert registry.get("other") is not first

    assert registry.end("abc") is True
    assert registry.end("abc") is False
    assert registry.get("abc") is not first


def test_cancelled_scenario_request_returns_to_idle(controller: SessionController, generator: FakeGenerator) -> None:
    async def scenario() -> None:
        generator.gate = asyncio.Event()
        pending = asyncio.create_task(controller.start_simulation("slow"))
        await asyncio.sleep(0)
        assert controller.phase is SessionPhase.AWAITING_SETUP

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert controller.phase is SessionPhase.IDLE
        assert not controller.progress.active

        generator.gate = None
        assert await controller.start_simulation("retry") is True
        assert controller.phase is SessionPhase.SETUP_READY

    asyncio.run(scenario())


def test_cancelled_reveal_request_keeps_setup_record(controller: SessionController, generator: FakeGenerator) -> None:
    async def scenario() -> None:
        await controller.start_simulation("x")
        before = controller.current
        generator.gate = asyncio.Event()
        pending = asyncio.create_task(controller.select_choice(1))
        await asyncio.sleep(0)
        assert controller.phase is SessionPhase.AWAITING_REVEAL

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert controller.phase is SessionPhase.SETUP_READY
        assert controller.current == before
        assert not controller.progress.active
        assert len(controller.archive) == 0

    asyncio.run(scenario())


def test_unexpected_generator_error_propagates_and_unblocks(controller: SessionController, generator: FakeGenerator) -> None:
    generator.scenarios.append(RuntimeError("client bug"))

    async def scenario() -> None:
        with pytest.raises(RuntimeError):
            await controller.start_simulation("x")
        assert controller.phase is SessionPhase.IDLE
        assert not controller.progress.active
        assert controller.notification is None
        assert await controller.start_simulation("again") is True

    asyncio.run(scenario())


def test_registry_evicts_idle_sessions(generator: FakeGenerator) -> None:
    now = [0.0]
    registry = SessionRegistry(
        controller_factory=lambda: SessionController(generator),
        idle_seconds=60,
        clock=lambda: now[0],
    )
    stale = registry.get("stale")
    now[0] = 30.0
    live = registry.get("live")

    now[0] = 61.0
    assert registry.get("live") is live
    assert "stale" not in registry.sessions
    assert len(registry) == 1
    assert registry.get("stale") is not stale


def test_registry_caps_sessions_least_recently_used_first(generator: FakeGenerator) -> None:
    registry = SessionRegistry(controller_factory=lambda: SessionController(generator), max_sessions=2)
    first = registry.get("a")
    registry.get("b")
    assert registry.get("a") is first  # "b" is now least recently used
    registry.get("c")

    assert list(registry.sessions) == ["a", "c"]
    for i in range(100):
        registry.get(f"guest-{i}")
    assert len(registry) == 2
