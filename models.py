# models.py
from sqlalchemy import (Column, Integer, String, Date, DateTime, Enum, ForeignKey, Boolean,
                        UniqueConstraint)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
import enum

Base = declarative_base()


class EventTypeEnum(enum.Enum):
    member = "member"
    exec = "exec"


class PhaseEnum(enum.Enum):
    opinion = "opinion"
    final = "final"


class VoteValueEnum(enum.Enum):
    yes = "yes"
    no = "no"
    abstain = "abstain"


# values a ballot may carry in each phase
PHASE_VALUES = {
    PhaseEnum.opinion: (VoteValueEnum.yes, VoteValueEnum.no, VoteValueEnum.abstain),
    PhaseEnum.final: (VoteValueEnum.yes, VoteValueEnum.no),
}


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(150), nullable=True)
    password = Column(String(255), nullable=False)  # hashed
    is_admin = Column(Boolean, default=False, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    can_vote = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Event(Base):
    __tablename__ = "events"
    id = Column(Integer, primary_key=True)
    type = Column(Enum(EventTypeEnum), nullable=False)
    name = Column(String(200), nullable=False)
    date = Column(Date, nullable=False)
    phase = Column(Enum(PhaseEnum), default=PhaseEnum.opinion, nullable=False)
    current_candidate_index = Column(Integer, default=0, nullable=False)
    is_ended = Column(Boolean, default=False, nullable=False)
    approval_threshold = Column(Integer, default=85, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    candidates = relationship("Candidate", back_populates="event", order_by="Candidate.order_index")


class Candidate(Base):
    __tablename__ = "candidates"
    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    name = Column(String(150), nullable=False)
    major = Column(String(150), nullable=True)
    grad_year = Column(String(20), nullable=True)
    gpa = Column(String(20), nullable=True)
    classification = Column(String(50), nullable=True)
    position = Column(String(150), nullable=True)  # exec events only
    image_url = Column(String(500), nullable=True)
    resume_url = Column(String(500), nullable=True)
    order_index = Column(Integer, nullable=False)
    event = relationship("Event", back_populates="candidates")


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", "candidate_id", "type", name="uq_vote_once"),
    )
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    candidate_id = Column(Integer, ForeignKey("candidates.id"), nullable=False)
    type = Column(Enum(PhaseEnum), nullable=False)
    vote_value = Column(Enum(VoteValueEnum), nullable=False)
    is_anonymous = Column(Boolean, nullable=False)
    position = Column(String(150), nullable=True)  # exec events only
    created_at = Column(DateTime(timezone=True), server_default=func.now())
