"""
Event progression: which candidate is live and which phase voting is in.

    opinion ──promote_phase()──▶ final
       │                          │
       └──────── end() ───────────┴──▶ ended (terminal)

advance()/retreat() move current_candidate_index inside [0, candidate_count).
Every transition is written to the store first; the in-memory event is replaced
only after the write succeeds, so a failed write leaves this object unchanged.
"""

from typing import List, Optional

from config import DEFAULT_APPROVAL_THRESHOLD, get_logger
from exceptions import (AtFirstCandidateError, ConfirmationRequiredError, EventEndedError,
                        NoActiveEventError, NoMoreCandidatesError, PhaseAlreadyFinalError,
                        TransitionRejected)
from models import Event, PhaseEnum
from notify import EventState
from positions import PositionGroup
from store import VoteStore
from upload import UploadPlan

logger = get_logger(__name__)


def check_threshold(threshold: int, context: Optional[dict] = None):
    if not 0 <= threshold <= 100:
        raise TransitionRejected("Approval threshold must be between 0 and 100.", context)


class EventProgression:
    def __init__(self, store: VoteStore, event: Event, candidate_count: int, notifier=None):
        self.store = store
        self.event = event
        self.candidate_count = candidate_count
        self.notifier = notifier

    @classmethod
    def load(cls, store: VoteStore, event_id: Optional[int] = None, notifier=None):
        """Progression for event_id, or for the active event when event_id is None."""
        event = store.get_event(event_id) if event_id is not None else store.get_active_event()
        if event is None:
            raise NoActiveEventError({"event_id": event_id})
        return cls(store, event, len(store.list_candidates(event.id)), notifier)

    @property
    def index(self) -> int:
        return self.event.current_candidate_index

    @property
    def phase(self) -> PhaseEnum:
        return self.event.phase

    @property
    def is_ended(self) -> bool:
        return self.event.is_ended

    @property
    def state(self) -> EventState:
        return EventState.from_event(self.event)

    # ---------- transitions ----------

    def advance(self):
        self._check_open()
        if self.index >= self.candidate_count - 1:
            raise NoMoreCandidatesError(self._context())
        self._commit("advance", current_candidate_index=self.index + 1)

    def retreat(self):
        self._check_open()
        if self.index <= 0:
            raise AtFirstCandidateError(self._context())
        self._commit("retreat", current_candidate_index=self.index - 1)

    def advance_position(self, groups: List[PositionGroup]):
        """Exec events: jump to the first candidate of the next position."""
        self._check_open()
        later = [g for g in groups if g.first_index > self.index]
        if not later:
            raise NoMoreCandidatesError(self._context())
        self._commit("advance", current_candidate_index=later[0].first_index)

    def retreat_position(self, groups: List[PositionGroup]):
        """Exec events: jump to the first candidate of the previous position."""
        self._check_open()
        earlier = [g for g in groups if g.last_index < self.index]
        if not earlier:
            raise AtFirstCandidateError(self._context())
        self._commit("retreat", current_candidate_index=earlier[-1].first_index)

    def promote_phase(self, confirmed: bool = False):
        """Opinion to final. Irreversible, so the caller must pass confirmed=True."""
        self._check_open()
        if self.phase == PhaseEnum.final:
            raise PhaseAlreadyFinalError(self._context())
        if not confirmed:
            raise ConfirmationRequiredError(self._context())
        self._commit("promote_phase", phase=PhaseEnum.final, current_candidate_index=0)

    def end(self):
        self._check_open()
        self._commit("end", is_ended=True)

    def set_threshold(self, threshold: int):
        self._check_open()
        check_threshold(threshold, self._context(threshold=threshold))
        self._commit("set_threshold", approval_threshold=threshold)

    # ---------- helpers ----------

    def _check_open(self):
        if self.is_ended:
            raise EventEndedError(self._context())

    def _context(self, **extra) -> dict:
        context = {"event_id": self.event.id, "phase": self.phase.value, "index": self.index,
                   "candidate_count": self.candidate_count}
        context.update(extra)
        return context

    def _commit(self, transition: str, **fields):
        self.event = self.store.update_event(self.event.id, **fields)
        logger.info("event transition", transition=transition, **self._context())
        if self.notifier is not None:
            self.notifier.publish(self.state)


def create_new(store: VoteStore, plan: UploadPlan, notifier=None,
               approval_threshold: int = DEFAULT_APPROVAL_THRESHOLD) -> EventProgression:
    """End whatever event is open and start the uploaded one in the opinion phase."""
    check_threshold(approval_threshold, {"event_name": plan.name, "threshold": approval_threshold})
    event = store.create_event(type=plan.type, name=plan.name, date=plan.date,
                               candidates=plan.candidates,
                               approval_threshold=approval_threshold)
    progression = EventProgression(store, event, len(plan.candidates), notifier)
    if notifier is not None:
        notifier.publish(progression.state)
    return progression


def reconcile(store: VoteStore) -> int:
    """Repair more than one open event by ending all but the newest."""
    return store.end_stale_events()
