from typing import Iterable, List, Optional, Tuple

from .clock import overlaps
from .errors import CommitmentConflict
from .models import FixedCommitment, ResolvedLocation


DEFAULT_DESCRIPTION = "User Commitment"


class CommitmentStore:
    """User-entered fixed time blocks, always kept sorted by start time."""

    def __init__(self, commitments: Optional[Iterable[FixedCommitment]] = None) -> None:
        self._items: List[FixedCommitment] = sorted(commitments or [], key=lambda c: c.start_time)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def items(self) -> List[FixedCommitment]:
        return list(self._items)

    def get(self, commitment_id: str) -> Optional[FixedCommitment]:
        for c in self._items:
            if c.id == commitment_id:
                return c
        return None

    def add(
        self,
        start_time: str,
        end_time: Optional[str],
        location: str,
        description: Optional[str] = None,
        resolved: Optional[ResolvedLocation] = None,
    ) -> FixedCommitment:
        if not location or not location.strip():
            raise ValueError("Commitment location is required")
        fields = {
            "start_time": start_time,
            "end_time": (end_time or "").strip() or start_time,
            "location": location.strip(),
            "description": (description or "").strip() or DEFAULT_DESCRIPTION,
        }
        if resolved is not None and resolved.is_resolved:
            fields.update(location=resolved.address or fields["location"], lat=resolved.lat, lng=resolved.lng)
        commitment = FixedCommitment(**fields)
        self._items.append(commitment)
        # HH:MM is fixed width, so string order is time order.
        self._items.sort(key=lambda c: c.start_time)
        return commitment

    def remove(self, commitment_id: str) -> bool:
        before = len(self._items)
        self._items = [c for c in self._items if c.id != commitment_id]
        return len(self._items) != before

    def clear(self) -> None:
        self._items = []

    def overlapping_pairs(self) -> List[Tuple[str, str]]:
        pairs: List[Tuple[str, str]] = []
        for i, a in enumerate(self._items):
            for b in self._items[i + 1 :]:
                same_instant = a.start_time == b.start_time
                if same_instant or overlaps(a.start_time, a.end_time, b.start_time, b.end_time):
                    pairs.append((a.id, b.id))
        return pairs

    def ensure_consistent(self) -> None:
        pairs = self.overlapping_pairs()
        if pairs:
            raise CommitmentConflict(pairs)
