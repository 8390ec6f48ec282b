"""Tests for the processing orchestrator and its response contract."""

import json
from unittest.mock import patch

import pytest

from src.pipeline.processor import OccupancyProcessor, OccupancyReport, process_request
from src.utils.config import EngineConfig


def _ts(minute: int, second: int = 0) -> str:
    return f"2024-05-01T12:{minute:02d}:{second:02d}Z"


def _det(person: str, ts: str, seat: str | None = None, raw: str | None = None) -> dict:
    return {
        "person_id": person,
        "timestamp": ts,
        "confirmed_seat_id": seat,
        "raw_seat_id": raw,
        "confidence": 0.9,
    }


@pytest.fixture
def dinner_payload() -> str:
    """One diner at table1 for five minutes, a pair at table2 for two."""
    frames = {}
    for minute in range(6):
        ts = _ts(minute)
        detections = [_det("P1", ts, "table1")]
        if minute <= 2:
            detections += [_det("P2", ts, "table2"), _det("P3", ts, "table2")]
        frames[f"frame_{minute:03d}"] = detections
    return json.dumps(frames)


class TestProcessRequest:
    """End-to-end tests for process_request."""

    def test_success_shape(self, dinner_payload: str) -> None:
        """A successful run returns every response key."""
        response = process_request(dinner_payload)
        assert response["status"] == "success"
        assert set(response) >= {
            "status",
            "processedFrames",
            "summaryMetrics",
            "arrivalTrendData",
            "aggregatedTimeSeries",
            "seatUsageTimeline",
            "interpolatedOccupancyData",
        }

    def test_seat_usage_timeline(self, dinner_payload: str) -> None:
        """Each table yields one block with its rounded duration."""
        blocks = process_request(dinner_payload)["seatUsageTimeline"]
        assert [(b["seatId"], b["duration"], b["personCount"]) for b in blocks] == [
            ("table1", 5, 1),
            ("table2", 2, 2),
        ]
        assert blocks[1]["personIds"] == ["P2", "P3"]
        assert blocks[0]["startTime"] == "2024-05-01T12:00:00.000Z"
        assert blocks[0]["endTime"] == "2024-05-01T12:05:00.000Z"

    def test_summary_metrics(self, dinner_payload: str) -> None:
        """Visitor, group, stay and peak metrics match the scenario."""
        summary = process_request(dinner_payload)["summaryMetrics"]
        assert summary["totalUniqueVisitors"] == 3
        assert summary["totalUniqueGroups"] == 1
        assert summary["averageStayTime"] == 3
        assert summary["currentTotalCustomers"] == 1
        assert summary["currentOccupiedTables"] == 1
        assert summary["peakOccupancyCount"] == 3
        assert summary["peakOccupancyTime"] == "12:00:00 on 2024-05-01"

    def test_arrival_trend(self, dinner_payload: str) -> None:
        """All arrivals fall in the noon hour."""
        trend = process_request(dinner_payload)["arrivalTrendData"]
        assert trend == [{"time": "2024-05-01 12:00", "newVisitors": 3, "newGroups": 1}]

    def test_interpolated_occupancy(self, dinner_payload: str) -> None:
        """Reconstructed occupancy follows the blocks frame by frame."""
        rows = process_request(dinner_payload)["interpolatedOccupancyData"]
        assert [row["seats"] for row in rows] == [
            {"table1": 1, "table2": 2},
            {"table1": 1, "table2": 2},
            {"table1": 1, "table2": 2},
            {"table1": 1, "table2": 0},
            {"table1": 1, "table2": 0},
            {"table1": 1, "table2": 0},
        ]

    def test_processed_frames(self, dinner_payload: str) -> None:
        """Processed frames carry per-seat counts in time order."""
        frames = process_request(dinner_payload)["processedFrames"]
        assert [f["frameId"] for f in frames] == [f"frame_{m:03d}" for m in range(6)]
        assert frames[0]["time"] == "12:00:00"
        assert frames[0]["totalPersons"] == 3
        assert frames[0]["seatOccupancy"] == [
            {"seatId": "table1", "persons": 1},
            {"seatId": "table2", "persons": 2},
        ]
        assert frames[0]["groupSizesAtTables"] == [1, 2]

    def test_aggregated_series(self, dinner_payload: str) -> None:
        """The 15-minute series reports the bucket peak."""
        series = process_request(dinner_payload)["aggregatedTimeSeries"]
        assert series["15min"] == [{"time": "12:00:00", "totalPersons": 3}]
        assert len(series["raw"]) == 6

    def test_response_is_json_serializable(self, dinner_payload: str) -> None:
        """The response can be dumped to JSON as is."""
        json.dumps(process_request(dinner_payload))

    def test_malformed_payload(self) -> None:
        """Malformed input is reported verbatim."""
        response = process_request("{not json")
        assert response["status"] == "error"
        assert response["message"].startswith("Payload is not valid JSON")

    def test_missing_fields(self) -> None:
        """A detection without a timestamp is an error."""
        response = process_request(json.dumps({"f1": [{"person_id": "P1"}]}))
        assert response == {
            "status": "error",
            "message": (
                "Detection object is missing required fields like "
                "'person_id' or 'timestamp' (frame 'f1')."
            ),
        }

    def test_bad_confidence(self) -> None:
        """A non-numeric confidence is reported as malformed input."""
        det = {**_det("P1", _ts(0)), "confidence": "high"}
        response = process_request(json.dumps({"f1": [det]}))
        assert response == {
            "status": "error",
            "message": "Frame 'f1': Invalid confidence: 'high'",
        }

    def test_all_frames_empty(self) -> None:
        """Only empty frames gives an empty success response."""
        response = process_request(json.dumps({"f1": [], "f2": []}))
        assert response["status"] == "success"
        assert response["summaryMetrics"] is None
        assert response["processedFrames"] == []
        assert response["seatUsageTimeline"] == []
        assert response["aggregatedTimeSeries"] == {
            "raw": [],
            "1min": [],
            "15min": [],
            "hour": [],
        }

    def test_start_time_filters_everything(self, dinner_payload: str) -> None:
        """A filter after the last frame leaves nothing to report."""
        response = process_request(dinner_payload, start_time_filter="2024-05-01T13:00:00Z")
        assert response["status"] == "success"
        assert response["summaryMetrics"] is None
        assert response["interpolatedOccupancyData"] == []

    def test_start_time_filter_trims_frames(self, dinner_payload: str) -> None:
        """Frames before the filter are ignored."""
        response = process_request(dinner_payload, start_time_filter=_ts(3))
        summary = response["summaryMetrics"]
        assert summary["totalUniqueVisitors"] == 1
        assert summary["peakOccupancyCount"] == 1

    def test_invalid_start_time(self, dinner_payload: str) -> None:
        """An unparseable filter is reported as an error."""
        response = process_request(dinner_payload, start_time_filter="yesterday")
        assert response["status"] == "error"
        assert response["message"].startswith("Invalid start time filter")

    def test_unexpected_error(self, dinner_payload: str) -> None:
        """Unexpected failures become a generic processing error."""
        with patch(
            "src.pipeline.processor.reconstruct_sessions",
            side_effect=RuntimeError("boom"),
        ):
            response = process_request(dinner_payload)
        assert response == {"status": "error", "message": "Processing failed: boom"}

    def test_downsampling_caps_series(self) -> None:
        """Display series are capped but keep the latest frame."""
        frames = {
            f"f{i:04d}": [_det("P1", f"2024-05-01T12:{i // 60:02d}:{i % 60:02d}Z", "t1")]
            for i in range(120)
        }
        config = EngineConfig(max_points=10)
        response = process_request(json.dumps(frames), config=config)
        assert len(response["processedFrames"]) <= 11
        assert response["processedFrames"][-1]["frameId"] == "f0119"
        assert len(response["interpolatedOccupancyData"]) <= 11
        assert len(response["aggregatedTimeSeries"]["raw"]) <= 11
        # Metrics still cover every frame.
        assert response["seatUsageTimeline"][0]["duration"] == 2

    def test_every_granularity_capped(self) -> None:
        """Bucketed series are capped too and keep their last bucket."""
        frames = {
            f"f{i:03d}": [_det("P1", f"2024-05-01T{8 + i // 60:02d}:{i % 60:02d}:00Z", "t1")]
            for i in range(120)
        }
        config = EngineConfig(max_points=10)
        series = process_request(json.dumps(frames), config=config)["aggregatedTimeSeries"]
        for points in series.values():
            assert len(points) <= config.max_points + 1
        assert series["1min"][-1]["time"] == "09:59:00"
        assert series["15min"][-1]["time"] == "09:45:00"
        assert series["hour"] == [
            {"time": "08:00:00", "totalPersons": 1},
            {"time": "09:00:00", "totalPersons": 1},
        ]

    def test_tolerance_from_config(self) -> None:
        """A short tolerance splits a visit interrupted by a long gap."""
        frames = {
            "f1": [_det("P1", _ts(0), "t1")],
            "f2": [_det("P1", _ts(2), "t1")],
            "f3": [_det("P2", _ts(3))],
            "f4": [_det("P1", _ts(10), "t1")],
            "f5": [_det("P1", _ts(12), "t1")],
        }
        config = EngineConfig(absence_frame_threshold=60, frame_rate=1.0)
        blocks = process_request(json.dumps(frames), config=config)["seatUsageTimeline"]
        assert [b["duration"] for b in blocks] == [2, 2]


class TestOccupancyProcessor:
    """Tests for the OccupancyProcessor class."""

    def test_default_config(self) -> None:
        """Processor falls back to default engine settings."""
        assert OccupancyProcessor().config == EngineConfig()

    def test_empty_report_response(self) -> None:
        """An empty report serializes to empty collections."""
        response = OccupancyProcessor().to_response(OccupancyReport())
        assert response["status"] == "success"
        assert response["summaryMetrics"] is None
        assert response["arrivalTrendData"] == []
        assert response["interpolatedOccupancyData"] == []
