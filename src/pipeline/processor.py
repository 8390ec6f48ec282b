"""Occupancy processing orchestrator.

Coordinates the full pipeline for one uploaded dataset: loads and
validates frames, normalizes them, reconstructs seat sessions, tracks
arrivals, aggregates time series, interpolates occupancy and downsamples
every chart series. ``process_request`` is the invocation boundary that
maps failures onto the response contract.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..analytics.arrivals import track_arrivals
from ..analytics.occupancy import OccupancyRow, interpolate_occupancy
from ..analytics.seat_sessions import SeatUsageBlock, reconstruct_sessions
from ..analytics.timeseries import (
    GRANULARITIES,
    SummaryMetrics,
    TimeSeriesPoint,
    aggregate_time_series,
    compute_summary_metrics,
    group_size_distribution,
)
from ..ingest.loader import MalformedInputError, load_frames
from ..ingest.normalizer import NoValidDataError, NormalizedFrame, normalize_frames
from ..utils.config import EngineConfig
from ..utils.downsample import downsample
from ..utils.timeutils import format_clock

logger = logging.getLogger(__name__)


@dataclass
class OccupancyReport:
    """Everything the engine computes for one dataset.

    Attributes:
        frames: Downsampled normalized frames for display.
        summary: Summary metrics over the full frame set.
        arrival_trend: Hourly first-time arrivals.
        time_series: Occupancy series per granularity.
        seat_usage: All finalized seat usage blocks.
        occupancy: Downsampled gap-filled occupancy rows.
        group_sizes: Frequency of each seat headcount.
        total_frames: Number of frames that survived normalization.
    """

    frames: list[NormalizedFrame] = field(default_factory=list)
    summary: Optional[SummaryMetrics] = None
    arrival_trend: list[dict] = field(default_factory=list)
    time_series: dict[str, list[TimeSeriesPoint]] = field(
        default_factory=lambda: {name: [] for name in GRANULARITIES}
    )
    seat_usage: list[SeatUsageBlock] = field(default_factory=list)
    occupancy: list[OccupancyRow] = field(default_factory=list)
    group_sizes: list[dict] = field(default_factory=list)
    total_frames: int = 0


class OccupancyProcessor:
    """Runs the reconstruction and aggregation stages on a payload.

    Args:
        config: Engine settings; defaults apply when omitted.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()

    def process(
        self, payload: str, start_time_filter: Optional[str] = None
    ) -> OccupancyReport:
        """Process a raw JSON payload.

        Args:
            payload: Frame-keyed detections as JSON text.
            start_time_filter: Optional ISO-8601 lower bound on frame time.

        Returns:
            OccupancyReport for the dataset.

        Raises:
            MalformedInputError: If the payload is structurally invalid.
            NoValidDataError: If no usable frame remains.
        """
        cfg = self.config
        tz = cfg.display_timezone
        frames = normalize_frames(load_frames(payload, start_time_filter))

        blocks = reconstruct_sessions(frames, cfg.absence_tolerance_ms)
        arrivals = track_arrivals(frames, min_group_size=cfg.min_group_size, tz=tz)

        summary = compute_summary_metrics(frames, tz=tz)
        summary.total_unique_visitors = arrivals.total_unique_visitors
        summary.total_unique_groups = arrivals.total_unique_groups
        summary.average_stay_time = arrivals.get_average_stay_minutes()

        report = OccupancyReport(
            frames=downsample(frames, cfg.max_points),
            summary=summary,
            arrival_trend=arrivals.get_arrival_trend(),
            time_series=aggregate_time_series(frames, cfg.max_points, tz=tz),
            seat_usage=blocks,
            occupancy=downsample(interpolate_occupancy(blocks, frames, tz=tz), cfg.max_points),
            group_sizes=group_size_distribution(frames),
            total_frames=len(frames),
        )

        logger.info(
            "Processed %d frames: %d seat sessions, %d unique visitors, peak %d",
            len(frames),
            len(blocks),
            summary.total_unique_visitors,
            summary.peak_occupancy_count,
        )
        return report

    def frame_to_dict(self, frame: NormalizedFrame) -> dict[str, Any]:
        """Serialize a normalized frame for the rendering layer."""
        return {
            "frameId": frame.frame_key,
            "time": format_clock(frame.timestamp_ms, self.config.display_timezone),
            "fullTimestamp": frame.timestamp,
            "totalPersons": frame.total_persons,
            "seatOccupancy": [
                {"seatId": seat, "persons": count}
                for seat, count in sorted(frame.seat_counts.items())
            ],
            "groupSizesAtTables": frame.group_sizes,
        }

    def to_response(self, report: OccupancyReport) -> dict[str, Any]:
        """Serialize a report into the success response shape."""
        return {
            "status": "success",
            "processedFrames": [self.frame_to_dict(f) for f in report.frames],
            "summaryMetrics": report.summary.to_dict() if report.summary else None,
            "arrivalTrendData": report.arrival_trend,
            "aggregatedTimeSeries": {
                name: [p.to_dict() for p in points]
                for name, points in report.time_series.items()
            },
            "seatUsageTimeline": [b.to_dict() for b in report.seat_usage],
            "interpolatedOccupancyData": [row.to_dict() for row in report.occupancy],
            "groupSizeDistribution": report.group_sizes,
        }


def process_request(
    json_payload: str,
    start_time_filter: Optional[str] = None,
    config: Optional[EngineConfig] = None,
) -> dict[str, Any]:
    """Handle one processing request end to end.

    Malformed input is reported verbatim as an error. Input that is valid
    but holds no usable frame yields a success response with empty
    collections and ``summaryMetrics`` set to None. Anything else is
    reported as a generic processing error.

    Args:
        json_payload: Frame-keyed detections as JSON text.
        start_time_filter: Optional ISO-8601 lower bound on frame time.
        config: Engine settings.

    Returns:
        Response dict with ``status`` ``"success"`` or ``"error"``.
    """
    processor = OccupancyProcessor(config)
    try:
        report = processor.process(json_payload, start_time_filter)
    except MalformedInputError as e:
        logger.error("Malformed input: %s", e)
        return {"status": "error", "message": str(e)}
    except NoValidDataError as e:
        logger.warning("%s Returning empty result.", e)
        report = OccupancyReport()
    except Exception as e:
        logger.exception("Processing failed")
        return {"status": "error", "message": f"Processing failed: {e}"}
    return processor.to_response(report)
