"""Session state machine for the setup -> choice -> reveal flow.

``transition`` is pure: it maps (state, event) to a new state plus the
effects to perform. ``SessionController`` performs those effects (generator
calls, archive updates) and feeds the results back in as events.

Every issued request carries a token. A response whose token no longer
matches the session (after a reset or an archive load) is dropped.
"""
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Union

from app.core.config import Settings, get_settings
from app.core.errors import GenerationError
from app.schemas.session import SessionOutSchema, SessionPhase
from app.schemas.simulation import Choice, ScenarioResult, SimulationRecord
from app.services.archive import ArchiveStore
from app.services.generator import GeminiGenerator, SimulationGenerator
from app.services.progress import ProgressMode, ProgressSimulator

logger = logging.getLogger(__name__)

SETUP_FAILED_MESSAGE = "The engine encountered a friction point. Please retry."
REVEAL_FAILED_MESSAGE = "The reveal phase encountered an error."

AWAITING_PHASES = (SessionPhase.AWAITING_SETUP, SessionPhase.AWAITING_REVEAL)


@dataclass(frozen=True)
class SessionState:
    phase: SessionPhase = SessionPhase.IDLE
    record: SimulationRecord | None = None
    token: int = 0  # last issued request / context change


# ---------- events ----------

@dataclass(frozen=True)
class StartRequested:
    prompt: str = ""


@dataclass(frozen=True)
class ScenarioReceived:
    token: int
    record: SimulationRecord


@dataclass(frozen=True)
class ScenarioFailed:
    token: int


@dataclass(frozen=True)
class ChoiceSelected:
    choice_id: int


@dataclass(frozen=True)
class RevealReceived:
    token: int
    record: SimulationRecord


@dataclass(frozen=True)
class RevealFailed:
    token: int


@dataclass(frozen=True)
class UndoRequested:
    pass


@dataclass(frozen=True)
class ResetRequested:
    pass


@dataclass(frozen=True)
class ArchiveLoaded:
    record: SimulationRecord


Event = Union[
    StartRequested,
    ScenarioReceived,
    ScenarioFailed,
    ChoiceSelected,
    RevealReceived,
    RevealFailed,
    UndoRequested,
    ResetRequested,
    ArchiveLoaded,
]


# ---------- effects ----------

@dataclass(frozen=True)
class RequestScenario:
    token: int
    prompt: str


@dataclass(frozen=True)
class RequestReveal:
    token: int
    record: SimulationRecord
    choice: Choice


@dataclass(frozen=True)
class ArchiveRecord:
    record: SimulationRecord


Effect = Union[RequestScenario, RequestReveal, ArchiveRecord]


def transition(state: SessionState, event: Event) -> tuple[SessionState, tuple[Effect, ...]]:
    """Return the next state and the effects the event triggers.

    Events that make no sense in the current state leave it unchanged.
    """
    unchanged = (state, ())

    if isinstance(event, ResetRequested):
        return SessionState(token=state.token + 1), ()

    if isinstance(event, ArchiveLoaded):
        if not event.record.is_revealed:
            return unchanged
        return SessionState(SessionPhase.REVEALED, event.record, state.token + 1), ()

    if isinstance(event, StartRequested):
        if state.phase is not SessionPhase.IDLE:
            return unchanged
        token = state.token + 1
        return (
            SessionState(SessionPhase.AWAITING_SETUP, None, token),
            (RequestScenario(token, event.prompt),),
        )

    if isinstance(event, (ScenarioReceived, ScenarioFailed)):
        if state.phase is not SessionPhase.AWAITING_SETUP or event.token != state.token:
            return unchanged
        if isinstance(event, ScenarioFailed):
            return SessionState(token=state.token), ()
        return SessionState(SessionPhase.SETUP_READY, event.record, state.token), ()

    if isinstance(event, ChoiceSelected):
        if state.phase is not SessionPhase.SETUP_READY:
            return unchanged
        choice = state.record.find_choice(event.choice_id)
        if choice is None:
            return unchanged
        token = state.token + 1
        return (
            SessionState(SessionPhase.AWAITING_REVEAL, state.record, token),
            (RequestReveal(token, state.record, choice),),
        )

    if isinstance(event, (RevealReceived, RevealFailed)):
        if state.phase is not SessionPhase.AWAITING_REVEAL or event.token != state.token:
            return unchanged
        if isinstance(event, RevealFailed):
            return SessionState(SessionPhase.SETUP_READY, state.record, state.token), ()
        return (
            SessionState(SessionPhase.REVEALED, event.record, state.token),
            (ArchiveRecord(event.record),),
        )

    if isinstance(event, UndoRequested):
        if state.phase is not SessionPhase.REVEALED:
            return unchanged
        # the archived copy keeps its reveal; only the working copy reverts
        return SessionState(SessionPhase.SETUP_READY, state.record.stripped(), state.token), ()

    raise TypeError(f"unknown session event: {event!r}")


_last_record_id = 0


def new_record_id() -> str:
    """Millisecond timestamp id, bumped so ids stay unique within the process."""
    global _last_record_id
    stamp = max(time.time_ns() // 1_000_000, _last_record_id + 1)
    _last_record_id = stamp
    return str(stamp)


def record_from_scenario(result: ScenarioResult, record_id: str) -> SimulationRecord:
    """Build a setup-phase record, substituting defaults for missing fields."""
    return SimulationRecord(
        id=record_id,
        title=result.title or "Unknown Simulation",
        role=result.role or "Participant",
        scene=result.scene or "",
        micro_expression_notes=result.micro_expression_notes or "",
        choices=tuple(result.choices or ()),
    )


class SessionController:
    """Drives one browser session: current record, archive and progress."""

    def __init__(
        self,
        generator: SimulationGenerator,
        archive: ArchiveStore | None = None,
        progress: ProgressSimulator | None = None,
        id_factory: Callable[[], str] = new_record_id,
    ):
        self.generator = generator
        self.archive = archive or ArchiveStore()
        self.progress = progress or ProgressSimulator()
        self.id_factory = id_factory
        self.state = SessionState()
        self.notification: str | None = None

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def current(self) -> SimulationRecord | None:
        return self.state.record

    @property
    def busy(self) -> bool:
        return self.state.phase in AWAITING_PHASES

    async def start_simulation(self, prompt: str = "") -> bool:
        """Request a new scenario. Returns False if the call was ignored."""
        return await self._dispatch(StartRequested(prompt))

    async def select_choice(self, choice_id: int) -> bool:
        """Request the reveal for choice_id. Returns False if ignored."""
        return await self._dispatch(ChoiceSelected(choice_id))

    async def undo(self) -> bool:
        return await self._dispatch(UndoRequested())

    async def reset(self) -> bool:
        """Drop the current record and return to Idle.

        An in-flight generator call is not cancelled. It keeps running and
        its response is dropped by the token check when it arrives.
        """
        if self.busy:
            self.progress.cancel()
        return await self._dispatch(ResetRequested())

    async def load_from_archive(self, record: SimulationRecord) -> bool:
        """Show an archived reveal. Like reset, an in-flight call runs on and is dropped."""
        if self.busy:
            self.progress.cancel()
        return await self._dispatch(ArchiveLoaded(record))

    def take_notification(self) -> str | None:
        """Return the pending user notification and clear it."""
        message, self.notification = self.notification, None
        return message

    def close(self) -> None:
        self.progress.close()

    def to_schema(self) -> SessionOutSchema:
        return SessionOutSchema(
            phase=self.phase,
            current=self.current,
            notification=self.notification,
            progress=self.progress.snapshot(),
            archived_count=len(self.archive),
        )

    async def _dispatch(self, event: Event) -> bool:
        new_state, effects = transition(self.state, event)
        if new_state == self.state:
            logger.debug("Ignored %s in phase %s", type(event).__name__, self.phase.value)
            return False
        self.state = new_state
        for effect in effects:
            await self._perform(effect)
        return True

    def _is_current(self, token: int) -> bool:
        return self.busy and self.state.token == token

    def _abandon(self, failed: Union[ScenarioFailed, RevealFailed]) -> None:
        """Roll back a request that ended without a result (cancelled or crashed)."""
        if self._is_current(failed.token):
            self.progress.cancel()
            self.state, _ = transition(self.state, failed)
            logger.warning("Abandoned request (token %s); back to %s", failed.token, self.phase.value)

    async def _perform(self, effect: Effect) -> None:
        if isinstance(effect, ArchiveRecord):
            self.archive.record_reveal(effect.record)
            return

        if isinstance(effect, RequestScenario):
            self.progress.start(ProgressMode.SETUP)
            try:
                result = await self.generator.request_scenario(effect.prompt)
            except GenerationError:
                logger.exception("Scenario request failed")
                if self._is_current(effect.token):
                    self.progress.cancel()
                    self.notification = SETUP_FAILED_MESSAGE
                await self._dispatch(ScenarioFailed(effect.token))
                return
            except BaseException:
                self._abandon(ScenarioFailed(effect.token))
                raise
            if not self._is_current(effect.token):
                logger.info("Dropping stale scenario response (token %s)", effect.token)
                return
            self.progress.complete()
            await self._dispatch(
                ScenarioReceived(effect.token, record_from_scenario(result, self.id_factory()))
            )
            return

        if isinstance(effect, RequestReveal):
            self.progress.start(ProgressMode.REVEAL)
            try:
                result = await self.generator.request_reveal(effect.record, effect.choice)
            except GenerationError:
                logger.exception("Reveal request failed for record %s", effect.record.id)
                if self._is_current(effect.token):
                    self.progress.cancel()
                    self.notification = REVEAL_FAILED_MESSAGE
                await self._dispatch(RevealFailed(effect.token))
                return
            except BaseException:
                self._abandon(RevealFailed(effect.token))
                raise
            if not self._is_current(effect.token):
                logger.info("Dropping stale reveal response (token %s)", effect.token)
                return
            self.progress.complete()
            await self._dispatch(
                RevealReceived(effect.token, effect.record.revealed(effect.choice.id, result))
            )
            return

        raise TypeError(f"unknown session effect: {effect!r}")


def build_controller(generator: SimulationGenerator, settings: Settings | None = None) -> SessionController:
    settings = settings or get_settings()
    progress = ProgressSimulator(
        tick_seconds=settings.progress_tick_seconds,
        ceiling=settings.progress_ceiling,
        settle_seconds=settings.progress_settle_seconds,
    )
    return SessionController(generator, progress=progress)


@dataclass
class SessionRegistry:
    """In-memory map of session id -> controller. Nothing outlives the process.

    Sessions idle for longer than ``idle_seconds`` are evicted on the next
    lookup, and at most ``max_sessions`` are kept (least recently used go
    first). Evicted controllers are closed so their timers stop.
    """

    controller_factory: Callable[[], SessionController]
    idle_seconds: float | None = None
    max_sessions: int | None = None
    clock: Callable[[], float] = time.monotonic
    sessions: OrderedDict[str, SessionController] = field(default_factory=OrderedDict)
    last_seen: dict[str, float] = field(default_factory=dict)

    def get(self, session_id: str) -> SessionController:
        now = self.clock()
        self._evict_idle(now)
        controller = self.sessions.get(session_id)
        if controller is None:
            controller = self.controller_factory()
            self.sessions[session_id] = controller
            logger.info("Opened session %s", session_id)
        self.sessions.move_to_end(session_id)
        self.last_seen[session_id] = now
        if self.max_sessions is not None:
            while len(self.sessions) > self.max_sessions:
                oldest = next(iter(self.sessions))
                logger.info("Evicting session %s (registry full)", oldest)
                self.end(oldest)
        return controller

    def end(self, session_id: str) -> bool:
        controller = self.sessions.pop(session_id, None)
        self.last_seen.pop(session_id, None)
        if controller is None:
            return False
        controller.close()
        logger.info("Ended session %s", session_id)
        return True

    def close(self) -> None:
        for session_id in list(self.sessions):
            self.end(session_id)

    def __len__(self) -> int:
        return len(self.sessions)

    def _evict_idle(self, now: float) -> None:
        if self.idle_seconds is None:
            return
        # sessions are ordered by last access, so stop at the first live one
        while self.sessions:
            oldest = next(iter(self.sessions))
            if now - self.last_seen[oldest] <= self.idle_seconds:
                break
            logger.info("Evicting idle session %s", oldest)
            self.end(oldest)


@lru_cache
def get_registry() -> SessionRegistry:
    settings = get_settings()
    generator = GeminiGenerator()
    return SessionRegistry(
        controller_factory=lambda: build_controller(generator, settings),
        idle_seconds=settings.session_cookie_max_age,
        max_sessions=settings.session_registry_max,
    )
