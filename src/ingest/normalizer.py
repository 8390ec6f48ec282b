"""Per-frame normalization of detections into seat observations.

Each surviving frame gets one canonical timestamp, its total occupancy,
per-seat headcounts and per-seat group identities.
"""

import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field

from .loader import Detection

logger = logging.getLogger(__name__)


class NoValidDataError(ValueError):
    """Raised when structurally valid input yields no usable frames."""


@dataclass(frozen=True)
class SeatObservation:
    """People observed at one seat in one frame.

    Attributes:
        seat_id: Seat identifier.
        person_ids: Sorted, deduplicated person ids; this is the group identity.
        headcount: Number of detections assigned to the seat.
    """

    seat_id: str
    person_ids: tuple[str, ...]
    headcount: int


@dataclass
class NormalizedFrame:
    """Summary of a single non-empty frame.

    Attributes:
        frame_key: Key of the frame in the input payload.
        timestamp: Canonical timestamp string (first detection's).
        timestamp_ms: Canonical timestamp as epoch milliseconds.
        detections: Detections of the frame.
        total_persons: Detection count of the frame.
        observations: Seat observations keyed by effective seat id.
        confirmed_groups: Group identities at confirmed seats only.
    """

    frame_key: str
    timestamp: str
    timestamp_ms: int
    detections: list[Detection]
    total_persons: int
    observations: dict[str, SeatObservation] = field(default_factory=dict)
    confirmed_groups: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def seat_counts(self) -> dict[str, int]:
        """Headcount per observed seat."""
        return {seat: obs.headcount for seat, obs in self.observations.items()}

    @property
    def group_sizes(self) -> list[int]:
        """Non-zero seat headcounts, in seat order."""
        return [
            self.observations[seat].headcount
            for seat in sorted(self.observations)
            if self.observations[seat].headcount > 0
        ]

    def group_at(self, seat_id: str) -> tuple[str, ...]:
        """Group identity at a seat, empty when the seat is unobserved."""
        obs = self.observations.get(seat_id)
        return obs.person_ids if obs else ()


def _group_by_seat(detections: list[Detection]) -> dict[str, SeatObservation]:
    people: dict[str, set[str]] = defaultdict(set)
    counts: dict[str, int] = defaultdict(int)
    for det in detections:
        seat = det.seat_id
        if seat is None:
            continue
        people[seat].add(det.person_id)
        counts[seat] += 1
    return {
        seat: SeatObservation(
            seat_id=seat, person_ids=tuple(sorted(ids)), headcount=counts[seat]
        )
        for seat, ids in people.items()
    }


def _confirmed_groups(detections: list[Detection]) -> dict[str, tuple[str, ...]]:
    people: dict[str, set[str]] = defaultdict(set)
    for det in detections:
        if det.confirmed_seat_id is not None:
            people[det.confirmed_seat_id].add(det.person_id)
    return {seat: tuple(sorted(ids)) for seat, ids in people.items()}


def normalize_frame(frame_key: str, detections: list[Detection]) -> NormalizedFrame:
    """Summarize one non-empty frame.

    Args:
        frame_key: Key of the frame in the payload.
        detections: The frame's detections; must not be empty.

    Returns:
        NormalizedFrame for the frame.
    """
    first = detections[0]
    return NormalizedFrame(
        frame_key=frame_key,
        timestamp=first.timestamp,
        timestamp_ms=first.timestamp_ms,
        detections=list(detections),
        total_persons=len(detections),
        observations=_group_by_seat(detections),
        confirmed_groups=_confirmed_groups(detections),
    )


def normalize_frames(frames: Mapping[str, list[Detection]]) -> list[NormalizedFrame]:
    """Normalize all non-empty frames and order them by time.

    Args:
        frames: Frame key to detections, as returned by ``load_frames``.

    Returns:
        Normalized frames sorted ascending by canonical timestamp.

    Raises:
        NoValidDataError: If no frame holds any detection.
    """
    normalized = [
        normalize_frame(key, detections)
        for key, detections in frames.items()
        if detections
    ]
    if not normalized:
        raise NoValidDataError("No valid data found in the file after processing.")

    normalized.sort(key=lambda f: f.timestamp_ms)
    logger.info(
        "Normalized %d frames (%d empty frames dropped)",
        len(normalized),
        len(frames) - len(normalized),
    )
    return normalized
