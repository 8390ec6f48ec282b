"""Tests for seat usage session reconstruction."""

from src.analytics.seat_sessions import (
    SeatSession,
    SeatSessionReconstructor,
    SeatState,
    SessionStatus,
    advance_seat,
    reconstruct_sessions,
)
from src.ingest.normalizer import NormalizedFrame, SeatObservation

BASE_MS = 1_714_564_800_000  # 2024-05-01T12:00:00Z
TOLERANCE_MS = 300_000


def _frame(seconds: int, seats: dict[str, list[str]] | None = None) -> NormalizedFrame:
    """Build a normalized frame ``seconds`` after the base time."""
    seats = seats or {}
    observations = {
        seat: SeatObservation(seat_id=seat, person_ids=tuple(sorted(ids)), headcount=len(ids))
        for seat, ids in seats.items()
    }
    return NormalizedFrame(
        frame_key=f"f{seconds}",
        timestamp="",
        timestamp_ms=BASE_MS + seconds * 1000,
        detections=[],
        total_persons=sum(len(ids) for ids in seats.values()),
        observations=observations,
    )


def _at(seconds: int) -> int:
    return BASE_MS + seconds * 1000


class TestSessionContinuity:
    """Tests for gap tolerance."""

    def test_short_absence_bridged(self) -> None:
        """A group absent briefly and then back forms one session."""
        frames = [
            _frame(0, {"t1": ["A", "B"]}),
            _frame(10, {"t1": ["A", "B"]}),
            _frame(20, {"t1": ["A", "B"]}),
            _frame(30),
            _frame(40),
            _frame(50, {"t1": ["B", "A"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert len(blocks) == 1
        block = blocks[0]
        assert block.seat_id == "t1"
        assert block.start_ms == _at(0)
        assert block.end_ms == _at(50)
        assert block.person_count == 2
        assert block.person_ids == ("A", "B")

    def test_absence_at_tolerance_resumes(self) -> None:
        """A gap exactly equal to the tolerance still resumes."""
        frames = [
            _frame(0, {"t1": ["A"]}),
            _frame(60, {"t1": ["A"]}),
            _frame(70),
            _frame(360, {"t1": ["A"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert len(blocks) == 1
        assert blocks[0].duration_minutes == 6

    def test_absence_beyond_tolerance_splits(self) -> None:
        """A gap longer than the tolerance ends the session."""
        frames = [
            _frame(0, {"t1": ["A", "B"]}),
            _frame(120, {"t1": ["A", "B"]}),
            _frame(130),
            _frame(421, {"t1": ["A", "B"]}),
            _frame(481, {"t1": ["A", "B"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert [(b.start_ms, b.end_ms) for b in blocks] == [
            (_at(0), _at(120)),
            (_at(421), _at(481)),
        ]

    def test_trailing_pending_finalized(self) -> None:
        """A session still pending when frames run out is emitted."""
        frames = [
            _frame(0, {"t1": ["A"]}),
            _frame(120, {"t1": ["A"]}),
            _frame(130),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert len(blocks) == 1
        assert blocks[0].end_ms == _at(120)


class TestTurnover:
    """Tests for group changes at a seat."""

    def test_turnover_splits(self) -> None:
        """A different group at the seat starts a new, non-overlapping session."""
        frames = [
            _frame(0, {"t1": ["A", "B"]}),
            _frame(60, {"t1": ["A", "B"]}),
            _frame(120, {"t1": ["A", "B"]}),
            _frame(130, {"t1": ["C"]}),
            _frame(190, {"t1": ["C"]}),
            _frame(250, {"t1": ["C"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert len(blocks) == 2
        first, second = blocks
        assert first.person_ids == ("A", "B")
        assert second.person_ids == ("C",)
        assert first.end_ms < second.start_ms

    def test_brief_fluctuation_resumes_pending(self) -> None:
        """A group returning after a one-frame identity change resumes."""
        frames = [
            _frame(0, {"t1": ["A", "B"]}),
            _frame(60, {"t1": ["A", "B"]}),
            _frame(70, {"t1": ["C"]}),
            _frame(80, {"t1": ["A", "B"]}),
            _frame(200, {"t1": ["A", "B"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert len(blocks) == 1
        assert blocks[0].person_ids == ("A", "B")
        assert (blocks[0].start_ms, blocks[0].end_ms) == (_at(0), _at(200))

    def test_older_pending_finalized_on_second_turnover(self) -> None:
        """An older pending session is emitted, not lost, when replaced."""
        frames = [
            _frame(0, {"t1": ["A"]}),
            _frame(60, {"t1": ["A"]}),
            _frame(120, {"t1": ["A"]}),
            _frame(130, {"t1": ["B"]}),
            _frame(190, {"t1": ["B"]}),
            _frame(200, {"t1": ["C"]}),
            _frame(260, {"t1": ["C"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert [b.person_ids for b in blocks] == [("A",), ("B",), ("C",)]


class TestSuppressionAndOrdering:
    """Tests for noise suppression and output order."""

    def test_sub_minute_session_suppressed(self) -> None:
        """Sessions rounding to zero minutes are never emitted."""
        frames = [_frame(0, {"t1": ["A"]}), _frame(10, {"t1": ["A"]}), _frame(20, {"t1": ["A"]})]
        assert reconstruct_sessions(frames, TOLERANCE_MS) == []

    def test_seats_independent_and_sorted(self) -> None:
        """Seats are tracked independently; blocks sort by start then seat."""
        frames = [
            _frame(0, {"t2": ["X"]}),
            _frame(30, {"t2": ["X"], "t1": ["A"]}),
            _frame(60, {"t1": ["A"], "t3": ["Z"]}),
            _frame(120, {"t1": ["A"], "t2": ["X"], "t3": ["Z"]}),
        ]
        blocks = reconstruct_sessions(frames, TOLERANCE_MS)
        assert [b.seat_id for b in blocks] == ["t2", "t1", "t3"]
        starts = [b.start_ms for b in blocks]
        assert starts == sorted(starts)

    def test_block_to_dict(self) -> None:
        """Blocks serialize with ISO times and minute durations."""
        frames = [_frame(0, {"t1": ["B", "A"]}), _frame(300, {"t1": ["A", "B"]})]
        (block,) = reconstruct_sessions(frames, TOLERANCE_MS)
        assert block.to_dict() == {
            "seatId": "t1",
            "startTime": "2024-05-01T12:00:00.000Z",
            "endTime": "2024-05-01T12:05:00.000Z",
            "duration": 5,
            "personCount": 2,
            "personIds": ["A", "B"],
        }
        assert block.covers(_at(0)) and block.covers(_at(300))
        assert not block.covers(_at(301))


class TestAdvanceSeat:
    """Tests for the pure per-seat transition function."""

    def test_extend(self) -> None:
        """Re-observing the active group advances last seen."""
        state = SeatState(active=SeatSession.start("t1", ("A",), 0))
        new, done = advance_seat("t1", state, ("A",), 1000, TOLERANCE_MS)
        assert new.active.last_seen_ms == 1000
        assert done == []

    def test_demote_does_not_mutate_input(self) -> None:
        """Transitions return new state and leave the input untouched."""
        state = SeatState(active=SeatSession.start("t1", ("A",), 0))
        new, done = advance_seat("t1", state, (), 1000, TOLERANCE_MS)
        assert new.active is None
        assert new.pending.status is SessionStatus.PENDING
        assert new.pending.last_seen_ms == 0
        assert state.active.status is SessionStatus.ACTIVE
        assert done == []

    def test_expire_pending(self) -> None:
        """Pending sessions past the tolerance are finalized."""
        pending = SeatSession.start("t1", ("A",), 0).demote()
        new, done = advance_seat("t1", SeatState(pending=pending), (), TOLERANCE_MS + 1, TOLERANCE_MS)
        assert new.is_empty
        assert [s.status for s in done] == [SessionStatus.FINALIZED]

    def test_new_group_keeps_unrelated_pending(self) -> None:
        """A new group at a seat with a different pending session keeps it pending."""
        pending = SeatSession.start("t1", ("A",), 0).demote()
        new, done = advance_seat("t1", SeatState(pending=pending), ("B",), 1000, TOLERANCE_MS)
        assert new.active.person_ids == ("B",)
        assert new.pending is pending
        assert done == []


class TestReconstructor:
    """Tests for the SeatSessionReconstructor class."""

    def test_incremental_updates(self) -> None:
        """Updating frame by frame matches the batch helper."""
        frames = [_frame(0, {"t1": ["A"]}), _frame(90, {"t1": ["A"]})]
        reconstructor = SeatSessionReconstructor(TOLERANCE_MS)
        for frame in frames:
            reconstructor.update(frame)
        assert reconstructor.finish() == reconstruct_sessions(frames, TOLERANCE_MS)

    def test_finish_clears_state(self) -> None:
        """finish finalizes and clears every seat state."""
        reconstructor = SeatSessionReconstructor(TOLERANCE_MS)
        reconstructor.update(_frame(0, {"t1": ["A"]}))
        reconstructor.finish()
        assert reconstructor.states == {}

    def test_idle_seat_dropped_after_expiry(self) -> None:
        """Seats with nothing left to track are removed from the state map."""
        reconstructor = SeatSessionReconstructor(TOLERANCE_MS)
        reconstructor.update(_frame(0, {"t1": ["A"]}))
        reconstructor.update(_frame(10))
        assert "t1" in reconstructor.states
        reconstructor.update(_frame(311))
        assert "t1" not in reconstructor.states
