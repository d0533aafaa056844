"""
Exception hierarchy for chapter voting.

Every error raised on purpose by the store, the state machine, the voting
client or the upload parser derives from ChapterVoteError. Views catch these
where the action was attempted and flash the message; nothing is retried.
"""

from typing import Any, Dict, Optional


class ChapterVoteError(Exception):
    """Base exception carrying optional key/value context for logging."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


# ========== Upload ==========


class UploadError(ChapterVoteError):
    """Malformed or incomplete event upload; blocks the upload."""


# ========== Authorization ==========


class AuthorizationError(ChapterVoteError):
    """The current user may not perform this action."""


class NotApprovedError(AuthorizationError):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("Your account must be approved before you can vote.", context)


class VotingPrivilegeError(AuthorizationError):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("Your account does not have voting privileges.", context)


class AdminRequiredError(AuthorizationError):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("This page is only accessible to administrators.", context)


# ========== Votes ==========


class InvalidVoteError(ChapterVoteError):
    """Vote value, phase or candidate does not fit the live event."""


class AlreadyVotedError(ChapterVoteError):
    """A vote for (user, event, candidate, type) already exists."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("You have already voted for this candidate in this phase.", context)


# ========== Persistence ==========


class PersistenceError(ChapterVoteError):
    """Store operation failed; message is shown to the user as-is."""


class NoActiveEventError(ChapterVoteError):
    """There is no non-ended event. Treated as an empty state by views."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("There is currently no active voting event.", context)


# ========== Event progression ==========


class TransitionRejected(ChapterVoteError):
    """State machine refused a transition; state is unchanged."""


class NoMoreCandidatesError(TransitionRejected):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("No more candidates.", context)


class AtFirstCandidateError(TransitionRejected):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("Already at the first candidate.", context)


class PhaseAlreadyFinalError(TransitionRejected):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("The event is already in the final vote phase.", context)


class ConfirmationRequiredError(TransitionRejected):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            "Switching to the final vote cannot be undone. Confirm to continue.", context
        )


class EventEndedError(TransitionRejected):
    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("This event has ended and can no longer be changed.", context)
