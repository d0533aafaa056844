"""
Vote tallying for the results, admin and display pages.

Everything here is a pure function of the votes, candidates and event passed in:
no store access and no mutation, so results can be recomputed on every request.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from models import Candidate, Event, EventTypeEnum, PhaseEnum, Vote, VoteValueEnum
from positions import PositionGroup


def percent(part: int, total: int) -> int:
    """Whole-number percentage rounded half up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


@dataclass(frozen=True)
class OpinionTally:
    yes: int = 0
    no: int = 0
    abstain: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no + self.abstain

    @property
    def yes_percent(self) -> int:
        return percent(self.yes, self.total)

    def distribution(self) -> Dict[str, int]:
        """Share of each answer, as shown on the display page."""
        return {
            "yes": percent(self.yes, self.total),
            "no": percent(self.no, self.total),
            "abstain": percent(self.abstain, self.total),
        }


@dataclass(frozen=True)
class FinalTally:
    yes: int = 0
    no: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no

    @property
    def yes_percent(self) -> int:
        return percent(self.yes, self.total)


@dataclass(frozen=True)
class CandidateResult:
    candidate: Candidate
    opinion: OpinionTally
    final: FinalTally
    approved: bool

    @property
    def opinion_yes_percent(self) -> int:
        return self.opinion.yes_percent

    @property
    def final_yes_percent(self) -> int:
        return self.final.yes_percent


@dataclass(frozen=True)
class PositionResult:
    """(candidate, yes_votes, percent) per candidate in upload order."""
    position: str
    counts: List[Tuple[Candidate, int, int]]
    total: int


def _count(votes: Iterable[Vote], value: VoteValueEnum) -> int:
    return sum(1 for v in votes if v.vote_value == value)


def is_approved(event: Event, final: FinalTally) -> bool:
    return (event.type == EventTypeEnum.member
            and final.total > 0
            and final.yes_percent >= event.approval_threshold)


def tally_candidate(votes: Iterable[Vote], candidate: Candidate, event: Event) -> CandidateResult:
    """Opinion and final tallies for one candidate out of an event's votes."""
    mine = [v for v in votes if v.candidate_id == candidate.id]
    opinion_votes = [v for v in mine if v.type == PhaseEnum.opinion]
    final_votes = [v for v in mine if v.type == PhaseEnum.final]

    opinion = OpinionTally(
        yes=_count(opinion_votes, VoteValueEnum.yes),
        no=_count(opinion_votes, VoteValueEnum.no),
        abstain=_count(opinion_votes, VoteValueEnum.abstain),
    )
    final = FinalTally(
        yes=_count(final_votes, VoteValueEnum.yes),
        no=_count(final_votes, VoteValueEnum.no),
    )
    return CandidateResult(candidate=candidate, opinion=opinion, final=final,
                           approved=is_approved(event, final))


def tally_event(votes: Iterable[Vote], candidates: List[Candidate], event: Event) -> List[CandidateResult]:
    """One result per candidate, in candidate order."""
    by_candidate = defaultdict(list)
    for v in votes:
        by_candidate[v.candidate_id].append(v)
    return [tally_candidate(by_candidate[c.id], c, event) for c in candidates]


def rank_results(results: List[CandidateResult]) -> List[CandidateResult]:
    """Highest final yes percentage first; ties keep their input order."""
    return sorted(results, key=lambda r: r.final_yes_percent, reverse=True)


def total_final_votes(results: List[CandidateResult]) -> int:
    return sum(r.final.total for r in results)


def approved_count(results: List[CandidateResult]) -> int:
    return sum(1 for r in results if r.approved)


def tally_positions(votes: Iterable[Vote], groups: List[PositionGroup]) -> List[PositionResult]:
    """Exec results: final yes votes per candidate within each position."""
    yes_by_candidate = defaultdict(int)
    for v in votes:
        if v.type == PhaseEnum.final and v.vote_value == VoteValueEnum.yes:
            yes_by_candidate[v.candidate_id] += 1

    results = []
    for g in groups:
        total = sum(yes_by_candidate[c.id] for c in g.candidates)
        counts = [(c, yes_by_candidate[c.id], percent(yes_by_candidate[c.id], total))
                  for c in g.candidates]
        results.append(PositionResult(position=g.position, counts=counts, total=total))
    return results
