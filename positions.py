# positions.py
from dataclasses import dataclass, field
from typing import List, Optional

from models import Candidate


@dataclass
class PositionGroup:
    """Candidates running for the same office, in upload order."""
    position: str
    first_index: int
    candidates: List[Candidate] = field(default_factory=list)

    @property
    def last_index(self) -> int:
        return self.first_index + len(self.candidates) - 1

    def contains_index(self, index: int) -> bool:
        return self.first_index <= index <= self.last_index

    def candidate(self, candidate_id: int) -> Optional[Candidate]:
        for c in self.candidates:
            if c.id == candidate_id:
                return c
        return None


def group_positions(candidates: List[Candidate]) -> List[PositionGroup]:
    """Group ordered candidates by position.

    first_index is the index of the first candidate of that position. Uploads keep
    each position contiguous; candidates without a position are skipped.
    """
    groups: List[PositionGroup] = []
    by_name = {}
    for index, c in enumerate(candidates):
        if not c.position:
            continue
        g = by_name.get(c.position)
        if g is None:
            g = PositionGroup(position=c.position, first_index=index)
            by_name[c.position] = g
            groups.append(g)
        g.candidates.append(c)
    return groups


def live_group(groups: List[PositionGroup], index: int) -> Optional[PositionGroup]:
    """The group whose index range holds index, else the first group."""
    for g in groups:
        if g.contains_index(index):
            return g
    return groups[0] if groups else None


def group_number(groups: List[PositionGroup], group: PositionGroup) -> int:
    """1-based number of group, for "Position 2 of 5" labels."""
    return [g.position for g in groups].index(group.position) + 1
