"""
Vote submission for one signed-in user.

VotingClient checks the user's standing and the ballot against the live event,
then inserts exactly one vote. Whether a vote already exists is decided by the
store's unique key on (user_id, event_id, candidate_id, type); the client does
not read before writing. Successful votes are remembered in ``voted`` so the
page can disable the buttons without another query; a change in event state
clears that memory.
"""

from typing import Optional, Set, Tuple

from config import get_logger
from exceptions import (AlreadyVotedError, InvalidVoteError, NotApprovedError,
                        VotingPrivilegeError)
from models import (PHASE_VALUES, Candidate, Event, EventTypeEnum, PhaseEnum, Profile, Vote,
                    VoteValueEnum)
from notify import EventState
from positions import PositionGroup
from store import VoteStore

logger = get_logger(__name__)


def check_can_vote(user: Profile):
    if not user.is_approved:
        raise NotApprovedError({"user_id": user.id})
    if not user.can_vote:
        raise VotingPrivilegeError({"user_id": user.id})


def parse_vote_value(phase: PhaseEnum, value) -> VoteValueEnum:
    """The VoteValueEnum for value, if that answer is allowed in phase."""
    try:
        parsed = value if isinstance(value, VoteValueEnum) else VoteValueEnum(str(value).lower())
    except ValueError:
        parsed = None
    if parsed not in PHASE_VALUES[phase]:
        allowed = "/".join(v.value for v in PHASE_VALUES[phase])
        raise InvalidVoteError(f"Invalid vote {value!r} for the {phase.value} phase (allowed: {allowed}).",
                               {"phase": phase.value, "value": str(value)})
    return parsed


class VotingClient:
    def __init__(self, store: VoteStore, user: Profile):
        self.store = store
        self.user = user
        self.voted: Set[Tuple[int, str]] = set()
        self.last_state: Optional[EventState] = None

    def has_voted(self, candidate_id: int, phase: PhaseEnum) -> bool:
        return (candidate_id, phase.value) in self.voted

    def load_voted(self, event: Event):
        """Seed the local flags from the store, e.g. when a page is first rendered."""
        for phase in PhaseEnum:
            for candidate_id in self.store.voted_candidate_ids(self.user.id, event.id, phase):
                self.voted.add((candidate_id, phase.value))

    def on_state_change(self, state: EventState):
        """Listener for PollingWatcher/PushNotifier: a new candidate or phase resets the flags."""
        if state != self.last_state:
            self.voted.clear()
        self.last_state = state

    def submit(self, event: Event, candidate: Candidate, phase: PhaseEnum, value) -> Vote:
        """Cast a member-event vote for candidate in phase."""
        check_can_vote(self.user)
        vote_value = parse_vote_value(phase, value)
        context = {"user_id": self.user.id, "event_id": event.id, "candidate_id": candidate.id,
                   "phase": phase.value}
        if event.is_ended:
            raise InvalidVoteError("This event has ended.", context)
        if event.type != EventTypeEnum.member:
            raise InvalidVoteError("Executive elections are voted by position.", context)
        if candidate.event_id != event.id:
            raise InvalidVoteError("That candidate is not part of this event.", context)
        if phase != event.phase:
            raise InvalidVoteError(f"Voting in the {phase.value} phase is closed.", context)

        try:
            vote = self.store.insert_vote(self.user.id, event.id, candidate.id, phase, vote_value)
        except AlreadyVotedError:
            self.voted.add((candidate.id, phase.value))
            logger.info("duplicate vote rejected", **context)
            raise
        self.voted.add((candidate.id, phase.value))
        logger.info("vote recorded", anonymous=vote.is_anonymous, **context)
        return vote

    def submit_position(self, event: Event, group: PositionGroup, candidate_id: int) -> Vote:
        """Cast the user's single choice for an exec position."""
        check_can_vote(self.user)
        context = {"user_id": self.user.id, "event_id": event.id, "position": group.position}
        if event.is_ended:
            raise InvalidVoteError("This event has ended.", context)
        if event.type != EventTypeEnum.exec:
            raise InvalidVoteError("Position voting is only used for executive elections.", context)
        candidate = group.candidate(candidate_id)
        if candidate is None:
            raise InvalidVoteError(f"Select one candidate for {group.position}.", context)

        vote = self.store.replace_position_vote(self.user.id, event.id, candidate.id, group.position)
        for c in group.candidates:
            self.voted.discard((c.id, PhaseEnum.final.value))
        self.voted.add((candidate.id, PhaseEnum.final.value))
        logger.info("position vote recorded", candidate_id=candidate.id, **context)
        return vote
