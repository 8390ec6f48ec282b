"""Generate a synthetic detections file for testing and demonstration.

Creates a frame-keyed JSON payload with groups arriving at tables,
staying for a while and leaving, with occasional detection dropouts
and unconfirmed seat assignments.
"""

import json
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np


def generate_sample_data(
    output_path: str = "data/sample/detections.json",
    start: str = "2024-05-01T11:00:00",
    duration_minutes: int = 120,
    seconds_per_frame: int = 10,
    tables: int = 6,
    dropout_rate: float = 0.05,
) -> str:
    """Generate a synthetic detections payload.

    Args:
        output_path: Path for the output JSON file.
        start: ISO-8601 timestamp of the first frame.
        duration_minutes: Length of the recording.
        seconds_per_frame: Time between sampled frames.
        tables: Number of tables in the venue.
        dropout_rate: Probability that a seated person is missed in a frame.

    Returns:
        Path to the generated file.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    rng = np.random.RandomState(42)
    t0 = datetime.fromisoformat(start)
    total_frames = duration_minutes * 60 // seconds_per_frame
    next_person = 1

    # table -> (person ids, frames left)
    seated: dict[str, tuple[list[str], int]] = {}
    payload: dict[str, list[dict]] = {}

    for frame_idx in range(total_frames):
        timestamp = (t0 + timedelta(seconds=frame_idx * seconds_per_frame)).isoformat()

        for t in range(1, tables + 1):
            table = f"table{t}"
            if table in seated:
                ids, left = seated[table]
                seated[table] = (ids, left - 1)
                if left <= 1:
                    del seated[table]
            elif rng.rand() < 0.02:
                size = int(rng.choice([1, 2, 2, 3, 4]))
                ids = [f"P{next_person + i}" for i in range(size)]
                next_person += size
                stay = int(rng.randint(20, 60) * 60 / seconds_per_frame)
                seated[table] = (ids, stay)

        detections = []
        for table, (ids, _) in sorted(seated.items()):
            for person_id in ids:
                if rng.rand() < dropout_rate:
                    continue
                confirmed = rng.rand() > 0.1
                detections.append(
                    {
                        "frame_number": frame_idx * seconds_per_frame * 30,
                        "timestamp": timestamp,
                        "person_id": person_id,
                        "bbox": [float(v) for v in rng.randint(0, 640, size=4)],
                        "raw_seat_id": table,
                        "confirmed_seat_id": table if confirmed else None,
                        "seat_status": "confirmed" if confirmed else "candidate",
                        "confidence": round(float(rng.uniform(0.5, 0.99)), 3),
                    }
                )

        payload[f"frame_{frame_idx:06d}"] = detections

    with open(output_path, "w") as f:
        json.dump(payload, f)
    return output_path


if __name__ == "__main__":
    path = generate_sample_data()
    print(f"Sample detections generated: {path}")
