"""Frame loading and structural validation of detection payloads.

Parses the raw JSON produced by the upstream seat-assignment pipeline,
shaped as ``{frame_key: [detection, ...]}``, into typed detections and
applies the optional start-time filter.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..utils.timeutils import to_epoch_ms

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("person_id", "timestamp")


class MalformedInputError(ValueError):
    """Raised when a payload cannot be parsed or is structurally invalid."""


@dataclass(frozen=True)
class Detection:
    """A single labelled person detection inside a frame.

    Attributes:
        person_id: Identity label assigned upstream.
        timestamp: Original timestamp string.
        timestamp_ms: ``timestamp`` as epoch milliseconds.
        confirmed_seat_id: Seat the person is confirmed at, if any.
        raw_seat_id: Unconfirmed seat candidate, if any.
        confidence: Detection confidence score.
    """

    person_id: str
    timestamp: str
    timestamp_ms: int
    confirmed_seat_id: Optional[str] = None
    raw_seat_id: Optional[str] = None
    confidence: float = 0.0

    @property
    def seat_id(self) -> Optional[str]:
        """Effective seat: the confirmed seat, else the raw seat."""
        return self.confirmed_seat_id or self.raw_seat_id

    @classmethod
    def from_dict(cls, data: Any, frame_key: str) -> "Detection":
        """Build a Detection from one raw detection object.

        Args:
            data: Decoded JSON object for the detection.
            frame_key: Key of the owning frame, used in error messages.

        Returns:
            Detection instance.

        Raises:
            MalformedInputError: If required fields are missing or invalid.
        """
        if not isinstance(data, dict):
            raise MalformedInputError(
                f"Detection in frame '{frame_key}' is not an object."
            )
        if any(data.get(name) is None for name in REQUIRED_FIELDS):
            raise MalformedInputError(
                "Detection object is missing required fields like "
                f"'person_id' or 'timestamp' (frame '{frame_key}')."
            )
        try:
            timestamp_ms = to_epoch_ms(data["timestamp"])
        except ValueError as e:
            raise MalformedInputError(f"Frame '{frame_key}': {e}") from e

        raw_confidence = data.get("confidence")
        try:
            confidence = float(raw_confidence) if raw_confidence is not None else 0.0
        except (TypeError, ValueError) as e:
            raise MalformedInputError(
                f"Frame '{frame_key}': Invalid confidence: {raw_confidence!r}"
            ) from e

        return cls(
            person_id=str(data["person_id"]),
            timestamp=data["timestamp"],
            timestamp_ms=timestamp_ms,
            confirmed_seat_id=_seat_or_none(data.get("confirmed_seat_id")),
            raw_seat_id=_seat_or_none(data.get("raw_seat_id")),
            confidence=confidence,
        )


def _seat_or_none(value: Any) -> Optional[str]:
    """Normalize a seat label; empty labels mean no seat."""
    if value is None or value == "":
        return None
    return str(value)


def parse_payload(payload: str) -> dict[str, Any]:
    """Decode a JSON payload and check its top-level shape.

    Args:
        payload: Raw JSON text.

    Returns:
        Decoded frame-keyed mapping.

    Raises:
        MalformedInputError: If the text is not JSON, not an object, empty,
            or the first frame is not a detection list.
    """
    try:
        data = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedInputError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not data:
        raise MalformedInputError("JSON data is empty or not an object.")

    first_key = next(iter(data))
    if not isinstance(data[first_key], list):
        raise MalformedInputError(
            "JSON structure is not as expected. "
            "Should be { frameKey: [detections...] }."
        )
    return data


def load_frames(
    payload: str,
    start_time_filter: Optional[str] = None,
) -> dict[str, list[Detection]]:
    """Parse a payload into frame-keyed detections.

    Frames whose first detection is strictly earlier than
    ``start_time_filter`` are dropped. Filtering everything out is not an
    error; the caller receives an empty mapping.

    Args:
        payload: Raw JSON text.
        start_time_filter: Optional ISO-8601 lower bound (inclusive).

    Returns:
        Mapping from frame key to its detections, in payload order.

    Raises:
        MalformedInputError: On any structural problem.
    """
    data = parse_payload(payload)

    filter_ms: Optional[int] = None
    if start_time_filter:
        try:
            filter_ms = to_epoch_ms(start_time_filter)
        except ValueError as e:
            raise MalformedInputError(f"Invalid start time filter: {e}") from e

    frames: dict[str, list[Detection]] = {}
    excluded = 0
    for frame_key, raw_detections in data.items():
        if not isinstance(raw_detections, list):
            raise MalformedInputError(
                f"Frame '{frame_key}' does not hold a list of detections."
            )
        detections = [Detection.from_dict(d, frame_key) for d in raw_detections]
        if filter_ms is not None and detections and detections[0].timestamp_ms < filter_ms:
            excluded += 1
            continue
        frames[frame_key] = detections

    logger.info(
        "Loaded %d frames (%d excluded by start time filter)", len(frames), excluded
    )
    return frames
