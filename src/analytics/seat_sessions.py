"""Seat usage session reconstruction.

Turns per-frame seat-group observations into usage sessions per seat.
A seat holds at most one active and one pending (recently vacated)
session. Pending sessions resume when the same group reappears within
the absence tolerance, so short detection dropouts do not split one
visit into fragments, while a different group at the seat starts a new
session.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from ..ingest.normalizer import NormalizedFrame
from ..utils.timeutils import minutes_between, to_iso

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Lifecycle state of a seat session."""

    ACTIVE = "active"
    PENDING = "pending"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class SeatUsageBlock:
    """A finalized, emitted seat usage session.

    Attributes:
        seat_id: Seat identifier.
        start_ms: Session start as epoch milliseconds.
        end_ms: Last time the group was seen, as epoch milliseconds.
        duration_minutes: Rounded session length in minutes.
        person_count: Number of people in the group.
        person_ids: Sorted person ids of the group.
    """

    seat_id: str
    start_ms: int
    end_ms: int
    duration_minutes: int
    person_count: int
    person_ids: tuple[str, ...]

    @property
    def start_time(self) -> str:
        return to_iso(self.start_ms)

    @property
    def end_time(self) -> str:
        return to_iso(self.end_ms)

    def covers(self, timestamp_ms: int) -> bool:
        """Whether the block's closed interval contains ``timestamp_ms``."""
        return self.start_ms <= timestamp_ms <= self.end_ms

    def to_dict(self) -> dict:
        return {
            "seatId": self.seat_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration_minutes,
            "personCount": self.person_count,
            "personIds": list(self.person_ids),
        }


@dataclass(frozen=True)
class SeatSession:
    """One group's occupancy of a seat while it is being tracked.

    Attributes:
        seat_id: Seat identifier.
        person_ids: Group identity (sorted person ids).
        start_ms: First observation time.
        last_seen_ms: Most recent observation time.
        status: Lifecycle state.
    """

    seat_id: str
    person_ids: tuple[str, ...]
    start_ms: int
    last_seen_ms: int
    status: SessionStatus = SessionStatus.ACTIVE

    @property
    def person_count(self) -> int:
        return len(self.person_ids)

    @classmethod
    def start(cls, seat_id: str, person_ids: tuple[str, ...], now_ms: int) -> "SeatSession":
        return cls(seat_id=seat_id, person_ids=person_ids, start_ms=now_ms, last_seen_ms=now_ms)

    def extend(self, now_ms: int) -> "SeatSession":
        return replace(self, last_seen_ms=now_ms, status=SessionStatus.ACTIVE)

    def demote(self) -> "SeatSession":
        return replace(self, status=SessionStatus.PENDING)

    def finalize(self) -> "SeatSession":
        return replace(self, status=SessionStatus.FINALIZED)

    def vacancy_ms(self, now_ms: int) -> int:
        return now_ms - self.last_seen_ms

    def to_block(self) -> Optional[SeatUsageBlock]:
        """Convert to an emitted block, or None for sub-minute sessions."""
        duration = minutes_between(self.start_ms, self.last_seen_ms)
        if duration <= 0:
            return None
        return SeatUsageBlock(
            seat_id=self.seat_id,
            start_ms=self.start_ms,
            end_ms=self.last_seen_ms,
            duration_minutes=duration,
            person_count=self.person_count,
            person_ids=self.person_ids,
        )


@dataclass(frozen=True)
class SeatState:
    """Tracking state of one seat: its active and pending sessions."""

    active: Optional[SeatSession] = None
    pending: Optional[SeatSession] = None

    @property
    def is_empty(self) -> bool:
        return self.active is None and self.pending is None


def advance_seat(
    seat_id: str,
    state: SeatState,
    group: tuple[str, ...],
    now_ms: int,
    tolerance_ms: int,
) -> tuple[SeatState, list[SeatSession]]:
    """Apply one frame's observation to a seat.

    Args:
        seat_id: Seat being advanced.
        state: The seat's state before this frame.
        group: Group identity observed at the seat; empty if unobserved.
        now_ms: Frame timestamp.
        tolerance_ms: Absence tolerance window.

    Returns:
        The new state and the sessions finalized by this step.
    """
    finalized: list[SeatSession] = []
    pending = state.pending
    if pending is not None and pending.vacancy_ms(now_ms) > tolerance_ms:
        finalized.append(pending.finalize())
        pending = None

    active = state.active
    if active is not None:
        if group == active.person_ids:
            return SeatState(active=active.extend(now_ms), pending=pending), finalized

        demoted = active.demote()
        if group and pending is not None and pending.person_ids == group:
            return SeatState(active=pending.extend(now_ms), pending=demoted), finalized
        if pending is not None:
            finalized.append(pending.finalize())
        new_active = SeatSession.start(seat_id, group, now_ms) if group else None
        return SeatState(active=new_active, pending=demoted), finalized

    if not group:
        return SeatState(active=None, pending=pending), finalized
    if pending is not None and pending.person_ids == group:
        return SeatState(active=pending.extend(now_ms), pending=None), finalized
    return SeatState(active=SeatSession.start(seat_id, group, now_ms), pending=pending), finalized


def finish_seat(state: SeatState) -> list[SeatSession]:
    """Finalize whatever a seat still tracks once frames are exhausted."""
    return [s.finalize() for s in (state.active, state.pending) if s is not None]


class SeatSessionReconstructor:
    """Folds normalized frames through the per-seat session state machine.

    Args:
        tolerance_ms: Absence tolerance window in milliseconds.
    """

    def __init__(self, tolerance_ms: int) -> None:
        self.tolerance_ms = tolerance_ms
        self.states: dict[str, SeatState] = {}
        self.finalized: list[SeatSession] = []

    def update(self, frame: NormalizedFrame) -> None:
        """Process the next frame in timestamp order.

        Args:
            frame: Normalized frame; must not precede earlier frames.
        """
        seats = set(self.states) | set(frame.observations)
        for seat_id in sorted(seats):
            state = self.states.get(seat_id, SeatState())
            new_state, done = advance_seat(
                seat_id,
                state,
                frame.group_at(seat_id),
                frame.timestamp_ms,
                self.tolerance_ms,
            )
            for session in done:
                logger.debug(
                    "Seat %s: session %s finalized (%d-%d)",
                    seat_id,
                    ",".join(session.person_ids),
                    session.start_ms,
                    session.last_seen_ms,
                )
            self.finalized.extend(done)
            if new_state.is_empty:
                self.states.pop(seat_id, None)
            else:
                self.states[seat_id] = new_state

    def finish(self) -> list[SeatUsageBlock]:
        """Finalize all remaining sessions and return the emitted blocks.

        Returns:
            Blocks sorted by start time, then seat id. Sessions that
            round to zero minutes are dropped.
        """
        for state in self.states.values():
            self.finalized.extend(finish_seat(state))
        self.states.clear()

        blocks = [b for b in (s.to_block() for s in self.finalized) if b is not None]
        blocks.sort(key=lambda b: (b.start_ms, b.seat_id))
        logger.info(
            "Reconstructed %d seat usage blocks (%d sub-minute sessions dropped)",
            len(blocks),
            len(self.finalized) - len(blocks),
        )
        return blocks


def reconstruct_sessions(
    frames: Iterable[NormalizedFrame], tolerance_ms: int
) -> list[SeatUsageBlock]:
    """Reconstruct seat usage blocks from time-ordered frames.

    Args:
        frames: Normalized frames in ascending timestamp order.
        tolerance_ms: Absence tolerance window in milliseconds.

    Returns:
        Finalized blocks sorted by start time.
    """
    reconstructor = SeatSessionReconstructor(tolerance_ms)
    for frame in frames:
        reconstructor.update(frame)
    return reconstructor.finish()
