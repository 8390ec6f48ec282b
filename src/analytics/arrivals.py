"""Visitor and group arrival tracking with hourly aggregation.

Keeps first/last-seen bookkeeping for every person id, first-seen
bookkeeping for every group identity at a confirmed seat, and counts
first sightings per hour for the arrival trend chart.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from ..ingest.normalizer import NormalizedFrame
from ..utils.timeutils import MS_PER_MINUTE, format_hour_bucket, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class VisitorRecord:
    """First and last sighting of a person id.

    Attributes:
        person_id: Identity label.
        first_seen_ms: Timestamp of the first frame containing the person.
        last_seen_ms: Timestamp of the latest frame containing the person.
    """

    person_id: str
    first_seen_ms: int
    last_seen_ms: int

    def stay_minutes(self) -> float:
        """Return time between first and last sighting in minutes."""
        return (self.last_seen_ms - self.first_seen_ms) / MS_PER_MINUTE


@dataclass
class ArrivalBucket:
    """First-time arrivals within one hour."""

    new_visitors: int = 0
    new_groups: int = 0


class ArrivalTracker:
    """Tracks unique visitors, unique groups and hourly arrivals.

    Args:
        min_group_size: Smallest confirmed seat group counted as a group.
        tz: IANA zone used for hour buckets.
    """

    def __init__(self, min_group_size: int = 2, tz: str = "UTC") -> None:
        self.min_group_size = min_group_size
        self.tz = tz
        self.visitors: dict[str, VisitorRecord] = {}
        self.seen_groups: set[tuple[str, tuple[str, ...]]] = set()
        self.buckets: dict[str, ArrivalBucket] = defaultdict(ArrivalBucket)

    def update(self, frame: NormalizedFrame) -> None:
        """Record the persons and groups of one frame.

        Args:
            frame: Normalized frame, in timestamp order.
        """
        now = frame.timestamp_ms
        hour = format_hour_bucket(now, self.tz)

        for det in frame.detections:
            record = self.visitors.get(det.person_id)
            if record is None:
                self.visitors[det.person_id] = VisitorRecord(det.person_id, now, now)
                self.buckets[hour].new_visitors += 1
            else:
                record.last_seen_ms = now

        for seat_id, person_ids in frame.confirmed_groups.items():
            if len(person_ids) < self.min_group_size:
                continue
            key = (seat_id, person_ids)
            if key not in self.seen_groups:
                self.seen_groups.add(key)
                self.buckets[hour].new_groups += 1

    @property
    def total_unique_visitors(self) -> int:
        return len(self.visitors)

    @property
    def total_unique_groups(self) -> int:
        return len(self.seen_groups)

    def get_average_stay_minutes(self) -> int:
        """Return the mean stay time over all visitors, rounded to minutes.

        Returns:
            Average stay in whole minutes, or 0 if no visitors were seen.
        """
        if not self.visitors:
            return 0
        stays = [v.stay_minutes() for v in self.visitors.values()]
        return round_half_up(float(np.mean(stays)))

    def get_arrival_trend(self) -> list[dict]:
        """Return hourly arrival counts in chronological order.

        Returns:
            List of ``{"time", "newVisitors", "newGroups"}`` dicts.
        """
        return [
            {
                "time": hour,
                "newVisitors": bucket.new_visitors,
                "newGroups": bucket.new_groups,
            }
            for hour, bucket in sorted(self.buckets.items())
        ]


def track_arrivals(
    frames: Iterable[NormalizedFrame], min_group_size: int = 2, tz: str = "UTC"
) -> ArrivalTracker:
    """Run an ArrivalTracker over time-ordered frames."""
    tracker = ArrivalTracker(min_group_size=min_group_size, tz=tz)
    for frame in frames:
        tracker.update(frame)
    logger.info(
        "Arrivals: %d unique visitors, %d unique groups",
        tracker.total_unique_visitors,
        tracker.total_unique_groups,
    )
    return tracker
