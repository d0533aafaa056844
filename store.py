"""
VoteStore - the single data-access object for events, candidates, votes and profiles.

One instance is built per application from a session factory and handed to the
views, the state machine and the voting client. Every public method opens its own
session and closes it before returning; returned rows are detached and safe to
read after the call.

SQLAlchemy failures are translated here:
- vote uniqueness violations become AlreadyVotedError
- everything else becomes PersistenceError carrying the driver's message
"""

from contextlib import contextmanager
from typing import Dict, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import VOTE_FETCH_BATCH_SIZE, DEFAULT_APPROVAL_THRESHOLD, get_logger
from exceptions import (AlreadyVotedError, AuthorizationError, ChapterVoteError,
                        PersistenceError, TransitionRejected)
from models import Candidate, Event, PhaseEnum, Profile, Vote, VoteValueEnum

logger = get_logger(__name__)

EVENT_FIELDS = {"phase", "current_candidate_index", "is_ended", "approval_threshold", "name"}


class VoteStore:
    def __init__(self, session_factory, batch_size: int = VOTE_FETCH_BATCH_SIZE):
        self._session_factory = session_factory
        self.batch_size = batch_size

    @contextmanager
    def _session(self, action: str, **context):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except ChapterVoteError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("store operation failed", action=action, error=str(e), **context)
            raise PersistenceError(f"Failed to {action}: {e}", context) from e
        finally:
            session.close()

    # ---------- profiles ----------

    def create_profile(self, email: str, password_hash: str, name: Optional[str] = None,
                       is_admin: bool = False, is_approved: bool = False) -> Profile:
        email = email.strip().lower()
        with self._session("create account", email=email) as s:
            if s.query(Profile).filter_by(email=email).first():
                raise PersistenceError("An account with that email already exists.",
                                       {"email": email})
            p = Profile(email=email, name=name, password=password_hash, is_admin=is_admin,
                        is_approved=is_approved, can_vote=is_approved)
            s.add(p)
            s.flush()
        logger.info("profile created", profile_id=p.id, is_admin=is_admin)
        return p

    def get_profile(self, profile_id: int) -> Optional[Profile]:
        with self._session("load profile", profile_id=profile_id) as s:
            return s.get(Profile, profile_id)

    def get_profile_by_email(self, email: str) -> Optional[Profile]:
        with self._session("load profile") as s:
            return s.query(Profile).filter_by(email=email.strip().lower()).first()

    def list_profiles(self, pending_only: bool = False) -> List[Profile]:
        with self._session("load users") as s:
            q = s.query(Profile)
            if pending_only:
                q = q.filter(Profile.is_approved.is_(False))
            return q.order_by(Profile.created_at, Profile.id).all()

    def set_approval(self, profile_id: int, approved: bool) -> Profile:
        """Approving grants voting; revoking approval removes it as well."""
        with self._session("update approval", profile_id=profile_id) as s:
            p = self._require(s, Profile, profile_id, "User")
            p.is_approved = approved
            p.can_vote = approved
        logger.info("approval changed", profile_id=profile_id, approved=approved)
        return p

    def set_can_vote(self, profile_id: int, can_vote: bool) -> Profile:
        with self._session("update voting privilege", profile_id=profile_id) as s:
            p = self._require(s, Profile, profile_id, "User")
            if can_vote and not p.is_approved:
                raise AuthorizationError("Only approved users can be given voting privileges.",
                                         {"profile_id": profile_id})
            p.can_vote = can_vote
        logger.info("voting privilege changed", profile_id=profile_id, can_vote=can_vote)
        return p

    # ---------- events ----------

    def get_event(self, event_id: int) -> Optional[Event]:
        with self._session("load event", event_id=event_id) as s:
            return s.get(Event, event_id)

    def get_active_event(self) -> Optional[Event]:
        with self._session("load active event") as s:
            return (s.query(Event)
                    .filter(Event.is_ended.is_(False))
                    .order_by(Event.created_at.desc(), Event.id.desc())
                    .first())

    def list_events(self, ended_only: bool = False) -> List[Event]:
        with self._session("load events") as s:
            q = s.query(Event)
            if ended_only:
                q = q.filter(Event.is_ended.is_(True))
            return q.order_by(Event.date.desc(), Event.id.desc()).all()

    def create_event(self, type, name: str, date, candidates: List[Dict],
                     approval_threshold: int = DEFAULT_APPROVAL_THRESHOLD) -> Event:
        """End every open event, then create the new one with its candidates, in one transaction."""
        with self._session("create event", name=name) as s:
            ended = (s.query(Event)
                     .filter(Event.is_ended.is_(False))
                     .update({Event.is_ended: True}, synchronize_session=False))
            e = Event(type=type, name=name, date=date, phase=PhaseEnum.opinion,
                      current_candidate_index=0, is_ended=False,
                      approval_threshold=approval_threshold)
            s.add(e)
            s.flush()
            for c in candidates:
                s.add(Candidate(event_id=e.id, **c))
        logger.info("event created", event_id=e.id, type=e.type.value,
                    candidates=len(candidates), ended_previous=ended)
        return e

    def update_event(self, event_id: int, **fields) -> Event:
        unknown = set(fields) - EVENT_FIELDS
        if unknown:
            raise ValueError(f"cannot update event fields: {sorted(unknown)}")
        with self._session("update event", event_id=event_id) as s:
            e = self._require(s, Event, event_id, "Event")
            for k, v in fields.items():
                setattr(e, k, v)
        return e

    def end_stale_events(self) -> int:
        """End all open events except the most recently created one."""
        with self._session("reconcile events") as s:
            open_events = (s.query(Event)
                           .filter(Event.is_ended.is_(False))
                           .order_by(Event.created_at.desc(), Event.id.desc())
                           .all())
            for e in open_events[1:]:
                e.is_ended = True
        ended = max(len(open_events) - 1, 0)
        if ended:
            logger.warning("ended stale open events", count=ended)
        return ended

    def delete_event(self, event_id: int):
        """Delete an ended event: votes first, then candidates, then the event."""
        with self._session("delete event", event_id=event_id) as s:
            e = self._require(s, Event, event_id, "Event")
            if not e.is_ended:
                raise TransitionRejected("Only past events can be deleted.", {"event_id": event_id})
            votes = s.query(Vote).filter(Vote.event_id == event_id).delete(synchronize_session=False)
            s.query(Candidate).filter(Candidate.event_id == event_id).delete(synchronize_session=False)
            s.delete(e)
        logger.info("event deleted", event_id=event_id, votes=votes)

    # ---------- candidates ----------

    def list_candidates(self, event_id: int) -> List[Candidate]:
        with self._session("load candidates", event_id=event_id) as s:
            return (s.query(Candidate)
                    .filter(Candidate.event_id == event_id)
                    .order_by(Candidate.order_index, Candidate.id)
                    .all())

    # ---------- votes ----------

    def insert_vote(self, user_id: int, event_id: int, candidate_id: int, type: PhaseEnum,
                    vote_value: VoteValueEnum, position: Optional[str] = None) -> Vote:
        context = {"user_id": user_id, "event_id": event_id, "candidate_id": candidate_id,
                   "type": type.value}
        with self._session("submit vote", **context) as s:
            v = Vote(user_id=user_id, event_id=event_id, candidate_id=candidate_id, type=type,
                     vote_value=vote_value, is_anonymous=(type == PhaseEnum.opinion),
                     position=position)
            s.add(v)
            try:
                s.flush()
            except IntegrityError as e:
                raise AlreadyVotedError(context) from e
        return v

    def replace_position_vote(self, user_id: int, event_id: int, candidate_id: int,
                              position: str) -> Vote:
        """Record an exec position choice, dropping the user's earlier choice for that position."""
        context = {"user_id": user_id, "event_id": event_id, "position": position}
        with self._session("submit vote", **context) as s:
            replaced = (s.query(Vote)
                        .filter(Vote.user_id == user_id, Vote.event_id == event_id,
                                Vote.position == position, Vote.type == PhaseEnum.final)
                        .delete(synchronize_session=False))
            v = Vote(user_id=user_id, event_id=event_id, candidate_id=candidate_id,
                     type=PhaseEnum.final, vote_value=VoteValueEnum.yes, is_anonymous=False,
                     position=position)
            s.add(v)
            try:
                s.flush()
            except IntegrityError as e:
                raise AlreadyVotedError(context) from e
        if replaced:
            logger.info("position vote replaced", **context)
        return v

    def fetch_all_votes(self, event_id: int) -> List[Vote]:
        """All votes of an event, read in batches of batch_size."""
        votes: List[Vote] = []
        offset = 0
        with self._session("load votes", event_id=event_id) as s:
            while True:
                batch = (s.query(Vote)
                         .filter(Vote.event_id == event_id)
                         .order_by(Vote.id)
                         .offset(offset)
                         .limit(self.batch_size)
                         .all())
                votes.extend(batch)
                if len(batch) < self.batch_size:
                    break
                offset += self.batch_size
        logger.debug("votes fetched", event_id=event_id, count=len(votes))
        return votes

    def voted_candidate_ids(self, user_id: int, event_id: int, type: PhaseEnum) -> Set[int]:
        with self._session("load votes", event_id=event_id) as s:
            rows = (s.query(Vote.candidate_id)
                    .filter(Vote.user_id == user_id, Vote.event_id == event_id, Vote.type == type)
                    .all())
            return {r[0] for r in rows}

    def position_choice(self, user_id: int, event_id: int, position: str) -> Optional[int]:
        with self._session("load votes", event_id=event_id) as s:
            row = (s.query(Vote.candidate_id)
                   .filter(Vote.user_id == user_id, Vote.event_id == event_id,
                           Vote.position == position, Vote.type == PhaseEnum.final)
                   .first())
            return row[0] if row else None

    @staticmethod
    def _require(session, model, pk, label):
        row = session.get(model, pk)
        if row is None:
            raise PersistenceError(f"{label} {pk} not found.", {"id": pk})
        return row
