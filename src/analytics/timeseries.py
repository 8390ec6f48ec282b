"""Occupancy time series and summary metrics.

Buckets total occupancy into several granularities, reporting the peak
inside each bucket so short bursts stay visible on coarse charts, and
computes the snapshot metrics shown on the dashboard.
"""

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..ingest.normalizer import NormalizedFrame
from ..utils.downsample import DEFAULT_MAX_POINTS, downsample
from ..utils.timeutils import (
    BUCKET_MINUTES,
    floor_to_bucket,
    format_clock,
    format_date,
    round_half_up_places,
)

logger = logging.getLogger(__name__)

GRANULARITIES = ("raw", "1min", "15min", "hour")


@dataclass(frozen=True)
class TimeSeriesPoint:
    """Total occupancy at a display time."""

    time: str
    total_persons: int
    timestamp_ms: int

    def to_dict(self) -> dict:
        return {"time": self.time, "totalPersons": self.total_persons}


@dataclass
class SummaryMetrics:
    """Snapshot and peak metrics over the full frame set."""

    current_total_customers: int = 0
    current_occupied_tables: int = 0
    average_group_size_overall: float = 0.0
    peak_occupancy_time: str = ""
    peak_occupancy_count: int = 0
    total_unique_visitors: int = 0
    total_unique_groups: int = 0
    average_stay_time: int = 0

    def to_dict(self) -> dict:
        return {
            "currentTotalCustomers": self.current_total_customers,
            "currentOccupiedTables": self.current_occupied_tables,
            "averageGroupSizeOverall": self.average_group_size_overall,
            "peakOccupancyTime": self.peak_occupancy_time,
            "peakOccupancyCount": self.peak_occupancy_count,
            "totalUniqueVisitors": self.total_unique_visitors,
            "totalUniqueGroups": self.total_unique_groups,
            "averageStayTime": self.average_stay_time,
        }


def bucket_series(
    frames: Sequence[NormalizedFrame], granularity: str, tz: str = "UTC"
) -> list[TimeSeriesPoint]:
    """Group frames into fixed-width buckets, keeping each bucket's peak.

    Args:
        frames: Normalized frames.
        granularity: One of ``1min``, ``15min``, ``hour``.
        tz: IANA zone for bucket boundaries and display.

    Returns:
        One point per non-empty bucket, in chronological order.
    """
    peaks: dict[int, int] = {}
    for frame in frames:
        start = floor_to_bucket(frame.timestamp_ms, granularity, tz)
        if frame.total_persons > peaks.get(start, -1):
            peaks[start] = frame.total_persons

    return [
        TimeSeriesPoint(time=format_clock(start, tz), total_persons=peak, timestamp_ms=start)
        for start, peak in sorted(peaks.items())
    ]


def raw_series(frames: Sequence[NormalizedFrame], tz: str = "UTC") -> list[TimeSeriesPoint]:
    """Per-frame occupancy points."""
    return [
        TimeSeriesPoint(
            time=format_clock(f.timestamp_ms, tz),
            total_persons=f.total_persons,
            timestamp_ms=f.timestamp_ms,
        )
        for f in frames
    ]


def aggregate_time_series(
    frames: Sequence[NormalizedFrame],
    max_points: int = DEFAULT_MAX_POINTS,
    tz: str = "UTC",
) -> dict[str, list[TimeSeriesPoint]]:
    """Build the ``raw``, ``1min``, ``15min`` and ``hour`` series.

    Args:
        frames: Normalized frames sorted by time.
        max_points: Point cap applied to every series.
        tz: IANA zone for bucket boundaries and display.

    Returns:
        Mapping from granularity name to its ordered points.
    """
    series = {"raw": downsample(raw_series(frames, tz), max_points)}
    for granularity in BUCKET_MINUTES:
        series[granularity] = downsample(bucket_series(frames, granularity, tz), max_points)
    logger.debug(
        "Time series sizes: %s", {name: len(points) for name, points in series.items()}
    )
    return series


def compute_summary_metrics(
    frames: Sequence[NormalizedFrame], tz: str = "UTC"
) -> SummaryMetrics:
    """Compute snapshot, peak and group size metrics.

    The peak is found by a linear scan keeping a strictly greater count,
    so ties resolve to the earliest frame.

    Args:
        frames: Full, non-downsampled normalized frames sorted by time.
        tz: IANA zone for the peak time string.

    Returns:
        SummaryMetrics with the visitor fields left at zero.
    """
    if not frames:
        return SummaryMetrics()

    latest = frames[-1]
    occupied = sum(1 for count in latest.seat_counts.values() if count > 0)

    peak_count = 0
    peak_time = ""
    for frame in frames:
        if frame.total_persons > peak_count:
            peak_count = frame.total_persons
            peak_time = (
                f"{format_clock(frame.timestamp_ms, tz)} on "
                f"{format_date(frame.timestamp_ms, tz)}"
            )

    sizes = [size for frame in frames for size in frame.group_sizes]
    average = float(np.mean(sizes)) if sizes else 0.0

    return SummaryMetrics(
        current_total_customers=latest.total_persons,
        current_occupied_tables=occupied,
        average_group_size_overall=round_half_up_places(average, 2),
        peak_occupancy_time=peak_time,
        peak_occupancy_count=peak_count,
    )


def group_size_distribution(frames: Sequence[NormalizedFrame]) -> list[dict]:
    """Count how often each seat headcount occurs across frames.

    Returns:
        ``{"groupSize", "frequency"}`` dicts ordered by group size.
    """
    counts = Counter(size for frame in frames for size in frame.group_sizes)
    return [
        {"groupSize": size, "frequency": freq} for size, freq in sorted(counts.items())
    ]


def traffic_extremes(
    points: Sequence[dict], n: int = 3
) -> tuple[list[dict], list[dict]]:
    """Return the busiest and quietest points of a serialized series.

    Args:
        points: ``{"time", "totalPersons"}`` dicts.
        n: Number of points on each side.

    Returns:
        ``(busiest, quietest)``; sorting is stable so earlier points win ties.
    """
    busiest = sorted(points, key=lambda p: p["totalPersons"], reverse=True)[:n]
    quietest = sorted(points, key=lambda p: p["totalPersons"])[:n]
    return busiest, quietest

