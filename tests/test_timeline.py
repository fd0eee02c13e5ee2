"""Tests for the step timeline and its binding rules."""

from pathlib import Path

import pytest

from manualizer.core.exceptions import (
    InvalidTimestampError,
    StaleBindingError,
    StepNotFoundException,
    ValidationException,
)
from manualizer.models.domain import BindingState, Frame, ManualStep
from manualizer.services.timeline import ManualTimeline
from manualizer.utils.timestamp import Timestamp, parse_timestamp


def _frame(time_text, offset=0):
    ts = parse_timestamp(time_text)
    return Frame(
        handle_id="h1",
        timestamp=ts,
        offset=offset,
        seconds=max(0, ts.total_seconds + offset),
        path=Path(f"/tmp/h1-{ts.total_seconds:04d}{offset:+d}.jpg"),
        url=f"/frames/1/h1-{ts.total_seconds:04d}{offset:+d}.jpg",
    )


def _candidates(time_text):
    return [_frame(time_text, offset) for offset in (-2, -1, 0, 1, 2)]


@pytest.fixture
def timeline():
    return ManualTimeline([
        ManualStep(headline="Open", timestamp=parse_timestamp("00:03"), id="s1"),
        ManualStep(headline="Save", timestamp=parse_timestamp("07:05"), id="s2"),
        ManualStep(headline="Close", timestamp=parse_timestamp("08:00"), id="s3"),
    ])


class TestTimestampChanges:
    """Test that timestamp mutations drop the binding."""

    @pytest.mark.parametrize("state", [BindingState.UNBOUND, BindingState.PENDING, BindingState.BOUND])
    def test_change_clears_binding_from_any_state(self, timeline, state):
        step = timeline.get_step("s2")
        step.binding = state
        step.bound_frame = "/frames/1/h1-0425+0.jpg" if state == BindingState.BOUND else None

        updated = timeline.on_timestamp_changed("s2", "07:06")

        assert updated.timestamp == Timestamp(7, 6)
        assert updated.bound_frame is None
        assert updated.binding == BindingState.UNBOUND

    def test_same_value_still_clears_binding(self, timeline):
        timeline.bind_frame("s2", _frame("07:05"))
        updated = timeline.on_timestamp_changed("s2", "07:05")
        assert updated.bound_frame is None
        assert updated.binding == BindingState.UNBOUND

    def test_invalid_value_leaves_step_untouched(self, timeline):
        timeline.bind_frame("s2", _frame("07:05"))
        with pytest.raises(InvalidTimestampError):
            timeline.on_timestamp_changed("s2", "7:5")
        step = timeline.get_step("s2")
        assert step.time == "07:05"
        assert step.binding == BindingState.BOUND

    def test_unknown_step(self, timeline):
        with pytest.raises(StepNotFoundException):
            timeline.on_timestamp_changed("nope", "00:01")

    def test_nudge_shifts_and_clears(self, timeline):
        timeline.bind_frame("s2", _frame("07:05"))
        step = timeline.nudge("s2", -1)
        assert step.time == "07:04"
        assert step.binding == BindingState.UNBOUND

    def test_nudge_clamps_at_zero(self, timeline):
        assert timeline.nudge("s1", -10).time == "00:00"

    def test_nudge_without_timestamp(self, timeline):
        step = timeline.insert_step(headline="New")
        with pytest.raises(InvalidTimestampError):
            timeline.nudge(step.id, 1)


class TestBinding:
    """Test pending, auto-bind and explicit selection."""

    def test_request_then_auto_bind_prefers_offset_zero(self, timeline):
        ts = parse_timestamp("07:05")
        assert timeline.mark_pending("s2", ts).binding == BindingState.PENDING

        step = timeline.apply_candidates("s2", ts, _candidates("07:05"))

        assert step.binding == BindingState.BOUND
        assert step.bound_frame == "/frames/1/h1-0425+0.jpg"

    def test_auto_bind_falls_back_to_first_frame(self, timeline):
        ts = parse_timestamp("07:05")
        frames = [_frame("07:05", -2), _frame("07:05", 1)]
        assert timeline.apply_candidates("s2", ts, frames).bound_frame == frames[0].url

    def test_late_candidates_for_old_timestamp_are_ignored(self, timeline):
        old = parse_timestamp("07:05")
        timeline.mark_pending("s2", old)
        timeline.on_timestamp_changed("s2", "07:10")

        step = timeline.apply_candidates("s2", old, _candidates("07:05"))

        assert step.time == "07:10"
        assert step.bound_frame is None
        assert step.binding == BindingState.UNBOUND

    def test_auto_bind_never_overrides_user_choice(self, timeline):
        ts = parse_timestamp("07:05")
        chosen = _frame("07:05", 2)
        timeline.bind_frame("s2", chosen)

        step = timeline.apply_candidates("s2", ts, _candidates("07:05"))
        assert step.bound_frame == chosen.url

    def test_empty_result_returns_to_unbound(self, timeline):
        ts = parse_timestamp("07:05")
        timeline.mark_pending("s2", ts)
        assert timeline.apply_candidates("s2", ts, []).binding == BindingState.UNBOUND

    def test_extraction_failed_returns_to_unbound(self, timeline):
        ts = parse_timestamp("07:05")
        timeline.mark_pending("s2", ts)
        assert timeline.extraction_failed("s2", ts).binding == BindingState.UNBOUND

    def test_mark_pending_for_stale_timestamp_is_ignored(self, timeline):
        step = timeline.mark_pending("s2", parse_timestamp("01:00"))
        assert step.binding == BindingState.UNBOUND

    def test_bind_frame_from_other_timestamp_is_stale(self, timeline):
        with pytest.raises(StaleBindingError) as exc_info:
            timeline.bind_frame("s2", _frame("07:06"))
        assert exc_info.value.status_code == 409
        assert timeline.get_step("s2").binding == BindingState.UNBOUND

    def test_bind_frame_to_step_without_time_is_stale(self, timeline):
        step = timeline.insert_step(headline="New")
        with pytest.raises(StaleBindingError):
            timeline.bind_frame(step.id, _frame("00:01"))

    def test_unbind(self, timeline):
        timeline.bind_frame("s2", _frame("07:05"))
        step = timeline.unbind("s2")
        assert step.bound_frame is None
        assert step.binding == BindingState.UNBOUND


class TestStructureEdits:
    """Test that structure edits keep other steps' bindings."""

    def _bind_all(self, timeline):
        for step in timeline:
            timeline.bind_frame(step.id, _frame(step.time))

    def test_insert_keeps_bindings(self, timeline):
        self._bind_all(timeline)
        new = timeline.insert_step(1, headline="Middle", timestamp="05:00")
        assert [s.id for s in timeline][1] == new.id
        assert new.binding == BindingState.UNBOUND
        assert all(s.binding == BindingState.BOUND for s in timeline if s.id != new.id)

    def test_append_step(self, timeline):
        step = timeline.append_step(headline="Last")
        assert timeline.steps[-1] is step
        assert step.timestamp is None

    def test_move_keeps_bindings(self, timeline):
        self._bind_all(timeline)
        timeline.move_step("s3", 0)
        assert [s.id for s in timeline] == ["s3", "s1", "s2"]
        assert all(s.binding == BindingState.BOUND for s in timeline)

    def test_move_out_of_range(self, timeline):
        with pytest.raises(ValidationException):
            timeline.move_step("s1", 3)

    def test_remove_keeps_bindings(self, timeline):
        self._bind_all(timeline)
        timeline.remove_step("s2")
        assert [s.id for s in timeline] == ["s1", "s3"]
        assert all(s.binding == BindingState.BOUND for s in timeline)

    def test_update_text_keeps_binding(self, timeline):
        self._bind_all(timeline)
        step = timeline.update_text("s1", headline="Open the app")
        assert step.headline == "Open the app"
        assert step.binding == BindingState.BOUND
