"""Gap-filled per-seat occupancy reconstructed from usage sessions.

Projects seat usage blocks back onto the frame timeline, producing one
row per frame with the reconstructed headcount of every seat. Unlike raw
per-frame seat counts, the matrix does not flicker when detection drops
a person for a few frames.
"""

import logging
from bisect import bisect_left, bisect_right
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from ..ingest.normalizer import NormalizedFrame
from ..utils.timeutils import format_clock
from .seat_sessions import SeatUsageBlock

logger = logging.getLogger(__name__)


@dataclass
class OccupancyRow:
    """Reconstructed occupancy of every tracked seat at one frame.

    Attributes:
        time: Display time of the frame.
        timestamp_ms: Frame timestamp.
        seats: Seat id to reconstructed person count.
    """

    time: str
    timestamp_ms: int
    seats: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"time": self.time, "seats": dict(self.seats)}


def interpolate_occupancy(
    blocks: Sequence[SeatUsageBlock],
    frames: Sequence[NormalizedFrame],
    tz: str = "UTC",
) -> list[OccupancyRow]:
    """Build the gap-filled occupancy matrix.

    For each seat that appears in any block and each frame, the count is
    taken from the block whose closed interval covers the frame time.
    When sessions of one seat overlap, the earliest-starting block wins.

    Args:
        blocks: Finalized seat usage blocks.
        frames: Normalized frames sorted by time.
        tz: IANA zone for display times.

    Returns:
        One row per frame, each holding every tracked seat.
    """
    timestamps = [f.timestamp_ms for f in frames]
    by_seat: dict[str, list[SeatUsageBlock]] = defaultdict(list)
    for block in blocks:
        by_seat[block.seat_id].append(block)

    columns: dict[str, list[Optional[int]]] = {}
    for seat_id in sorted(by_seat):
        column: list[Optional[int]] = [None] * len(timestamps)
        for block in sorted(by_seat[seat_id], key=lambda b: b.start_ms):
            lo = bisect_left(timestamps, block.start_ms)
            hi = bisect_right(timestamps, block.end_ms)
            for i in range(lo, hi):
                if column[i] is None:
                    column[i] = block.person_count
        columns[seat_id] = column

    rows = [
        OccupancyRow(
            time=format_clock(ts, tz),
            timestamp_ms=ts,
            seats={seat_id: column[i] or 0 for seat_id, column in columns.items()},
        )
        for i, ts in enumerate(timestamps)
    ]
    logger.debug("Interpolated occupancy for %d seats over %d frames", len(columns), len(rows))
    return rows
