"""Tests for JSON-file manual persistence."""

import pytest

from manualizer.models.domain import BindingState, Manual, ManualStep
from manualizer.repositories.manual_repository import ManualRepository
from manualizer.utils.timestamp import parse_timestamp


class TestManualRepository:
    """Test manual repository operations."""

    def setup_method(self):
        self.step = ManualStep(
            headline="Save",
            description="Press Save.",
            timestamp=parse_timestamp("07:05"),
            bound_frame="/frames/1/abcd1234-0425+0.jpg",
            binding=BindingState.BOUND,
        )

    def test_create_allocates_increasing_ids(self, tmp_path):
        repo = ManualRepository(tmp_path)
        first = repo.create(Manual(title="a.mov", video_path="a.mov"))
        second = repo.create(Manual(title="b.mov", video_path="b.mov"))
        assert (first.id, second.id) == (1, 2)

    def test_ids_continue_after_highest_existing(self, tmp_path):
        repo = ManualRepository(tmp_path)
        repo.create(Manual(title="a.mov", video_path="a.mov"))
        repo.create(Manual(title="b.mov", video_path="b.mov"))
        repo.delete(1)
        assert repo.create(Manual(title="c.mov", video_path="c.mov")).id == 3

    def test_round_trip_keeps_steps_and_bindings(self, tmp_path):
        repo = ManualRepository(tmp_path)
        manual = repo.create(Manual(title="a.mov", video_path="a.mov", steps=[self.step], video_handle_id="abcd1234"))

        loaded = repo.get(manual.id)

        assert loaded.video_handle_id == "abcd1234"
        assert loaded.steps[0].id == self.step.id
        assert loaded.steps[0].time == "07:05"
        assert loaded.steps[0].bound_frame == self.step.bound_frame
        assert loaded.steps[0].binding == BindingState.BOUND

    def test_step_without_time_round_trips(self, tmp_path):
        repo = ManualRepository(tmp_path)
        manual = repo.create(Manual(title="a.mov", video_path="a.mov", steps=[ManualStep(headline="New")]))
        assert repo.get(manual.id).steps[0].timestamp is None

    def test_save_updates_and_leaves_no_temp_files(self, tmp_path):
        repo = ManualRepository(tmp_path)
        manual = repo.create(Manual(title="a.mov", video_path="a.mov"))
        manual.steps.append(self.step)
        repo.save(manual)

        assert len(repo.get(manual.id).steps) == 1
        assert sorted(p.name for p in tmp_path.iterdir()) == ["1.json"]

    def test_save_requires_id(self, tmp_path):
        with pytest.raises(ValueError):
            ManualRepository(tmp_path).save(Manual(title="a.mov", video_path="a.mov"))

    def test_missing_and_corrupt_files(self, tmp_path):
        repo = ManualRepository(tmp_path)
        assert repo.get(5) is None
        (tmp_path / "6.json").write_text("{not json", encoding="utf-8")
        assert repo.get(6) is None

    def test_list_all_and_delete(self, tmp_path):
        repo = ManualRepository(tmp_path)
        repo.create(Manual(title="a.mov", video_path="a.mov"))
        repo.create(Manual(title="b.mov", video_path="b.mov"))

        assert [m.title for m in repo.list_all()] == ["a.mov", "b.mov"]
        assert repo.delete(1) is True
        assert repo.delete(1) is False
        assert [m.id for m in repo.list_all()] == [2]
