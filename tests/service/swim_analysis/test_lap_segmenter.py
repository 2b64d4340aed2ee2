"""
Unit tests for lap segmentation and feature derivation.

These tests verify that laps are split into sets at rest intervals, that positional
features use the right denominators and that session attributes are joined
without dropping laps.
"""

import datetime as dt

import pandas as pd
import pytest

from swim_trends.service.swim_analysis.common.constants import Columns
from swim_trends.service.swim_analysis.common.data_models import LapRecord, SessionRecord
from swim_trends.service.swim_analysis.segmentation.lap_segmenter import (
    annotate_laps,
    assign_set_ids,
    derive_enriched_laps,
    read_enriched_laps,
    write_enriched_laps,
)
from swim_trends.service.swim_analysis.segmentation.session_table import laps_to_frame, sessions_to_frame


def make_laps(file_id, lengths):
    """Build lap records from (length_type, swim_stroke, total_elapsed_time) tuples."""
    return [
        LapRecord(
            file_id=file_id,
            message_index=i,
            length_type=length_type,
            swim_stroke=stroke,
            total_elapsed_time=elapsed,
        )
        for i, (length_type, stroke, elapsed) in enumerate(lengths)
    ]


class TestAssignSetIds:
    def test_no_idle_laps_is_single_set(self):
        """A workout without rest intervals is one set."""
        assert assign_set_ids(["active", "active", "active"]) == [1, 1, 1]

    def test_idle_lap_closes_current_set(self):
        """The idle lap keeps the id of the set it ends."""
        assert assign_set_ids(["active", "active", "idle", "active"]) == [1, 1, 1, 2]

    def test_every_idle_lap_increments(self):
        """Consecutive idle laps each increment the id."""
        assert assign_set_ids(["active", "idle", "idle", "active"]) == [1, 1, 2, 3]

    def test_leading_idle_lap(self):
        """A rest before the first length starts the swimming at set 2."""
        assert assign_set_ids(["idle", "active", "active"]) == [1, 2, 2]

    def test_missing_length_type_does_not_increment(self):
        assert assign_set_ids(["active", None, "active"]) == [1, 1, 1]

    def test_empty(self):
        assert assign_set_ids([]) == []


class TestAnnotateLaps:
    @pytest.fixture
    def example_laps(self):
        """Two lengths, a rest, then one more length."""
        return laps_to_frame(
            make_laps(
                "a.fit",
                [
                    ("active", "freestyle", 30.0),
                    ("active", "freestyle", 31.0),
                    ("idle", None, 20.0),
                    ("active", "backstroke", 35.0),
                ],
            )
        )

    def test_worked_example(self, example_laps):
        """Verify every derived column for the reference workout."""
        annotated = annotate_laps(example_laps)

        assert annotated["lap_index"].tolist() == [1, 2, 4]
        assert annotated["total_laps"].tolist() == [4, 4, 4]
        assert annotated["set_id"].tolist() == [1, 1, 2]
        assert annotated["lap_in_set"].tolist() == [1, 2, 1]
        assert annotated["set_size"].tolist() == [2, 2, 1]
        assert annotated["pos_within_set"].tolist() == [0.5, 1.0, 1.0]
        assert annotated["pos_within_workout"].tolist() == [0.25, 0.5, 1.0]
        assert annotated["swim_stroke"].tolist() == ["freestyle", "freestyle", "backstroke"]

    def test_input_is_not_modified(self, example_laps):
        original = example_laps.copy()
        annotate_laps(example_laps)
        pd.testing.assert_frame_equal(example_laps, original)

    def test_drill_laps_count_toward_workout_position(self):
        """Drill lengths are dropped but still count in total_laps."""
        laps = laps_to_frame(
            make_laps(
                "drill.fit",
                [
                    ("active", "freestyle", 30.0),
                    ("active", "drill", 45.0),
                    ("active", "freestyle", 30.0),
                ],
            )
        )
        annotated = annotate_laps(laps)

        assert "drill" not in annotated["swim_stroke"].tolist()
        assert annotated["lap_index"].tolist() == [1, 3]
        assert annotated["total_laps"].tolist() == [3, 3]
        assert annotated["pos_within_workout"].tolist() == [pytest.approx(1 / 3), 1.0]
        assert annotated["set_size"].tolist() == [2, 2]

    def test_zero_idle_laps_single_set(self):
        laps = laps_to_frame(make_laps("one_set.fit", [("active", "freestyle", 30.0)] * 6))
        annotated = annotate_laps(laps)

        assert set(annotated["set_id"]) == {1}
        assert annotated["pos_within_set"].iloc[-1] == 1.0
        assert annotated["pos_within_workout"].iloc[-1] == 1.0

    def test_last_lap_of_each_set_has_position_one(self):
        lengths = [("active", "freestyle", 30.0)] * 3 + [("idle", None, 15.0)] + [("active", "breaststroke", 40.0)] * 2
        annotated = annotate_laps(laps_to_frame(make_laps("sets.fit", lengths)))

        last_in_set = annotated.groupby("set_id")["pos_within_set"].last()
        assert last_in_set.tolist() == [1.0, 1.0]
        assert annotated["pos_within_set"].between(0, 1, inclusive="right").all()
        assert annotated["pos_within_workout"].between(0, 1, inclusive="right").all()

    def test_files_are_numbered_independently(self):
        """Lap indices and set ids restart in every file, and input order is kept."""
        laps_a = make_laps("a.fit", [("active", "freestyle", 30.0), ("idle", None, 10.0), ("active", "freestyle", 30.0)])
        laps_b = make_laps("b.fit", [("active", "backstroke", 40.0), ("active", "backstroke", 41.0)])
        annotated = annotate_laps(laps_to_frame(laps_a + laps_b))

        assert annotated["file_id"].tolist() == ["a.fit", "a.fit", "b.fit", "b.fit"]
        assert annotated["lap_index"].tolist() == [1, 3, 1, 2]
        assert annotated["set_id"].tolist() == [1, 2, 1, 1]
        assert annotated["total_laps"].tolist() == [3, 3, 2, 2]

    def test_set_counts_add_up_to_swum_laps(self):
        lengths = [
            ("active", "freestyle", 30.0),
            ("active", "drill", 50.0),
            ("idle", None, 20.0),
            ("active", "freestyle", 31.0),
            ("idle", None, 20.0),
            ("idle", None, 20.0),
            ("active", "butterfly", 33.0),
            ("active", "butterfly", 34.0),
        ]
        annotated = annotate_laps(laps_to_frame(make_laps("count.fit", lengths)))

        set_sizes = annotated.groupby("set_id")["set_size"].first()
        swum = sum(1 for length_type, stroke, _ in lengths if length_type == "active" and stroke != "drill")
        assert set_sizes.sum() == swum == len(annotated)

    def test_only_idle_laps(self):
        laps = laps_to_frame(make_laps("rest.fit", [("idle", None, 60.0), ("idle", None, 60.0)]))
        assert annotate_laps(laps).empty

    def test_empty_input(self):
        annotated = annotate_laps(laps_to_frame([]))
        assert annotated.empty
        assert "pos_within_set" in annotated.columns


class TestDeriveEnrichedLaps:
    @pytest.fixture
    def laps(self):
        return laps_to_frame(
            make_laps(
                "a.fit",
                [
                    ("active", "freestyle", 30.0),
                    ("active", "freestyle", 31.0),
                    ("idle", None, 20.0),
                    ("active", "backstroke", 35.0),
                ],
            )
            + make_laps("orphan.fit", [("active", "freestyle", 28.0)])
        )

    @pytest.fixture
    def sessions(self):
        return sessions_to_frame(
            [
                SessionRecord(
                    file_id="a.fit",
                    session_date=dt.date(2023, 1, 5),
                    start_time=dt.datetime(2023, 1, 5, 7, 0),
                    pool_length=25.0,
                    pool_length_unit="metric",
                    session_number=1,
                )
            ]
        )

    def test_output_columns(self, laps, sessions):
        enriched = derive_enriched_laps(laps, sessions)
        assert list(enriched.columns) == Columns.ENRICHED

    def test_session_attributes_are_joined(self, laps, sessions):
        enriched = derive_enriched_laps(laps, sessions)
        joined = enriched.iloc[:3]

        assert joined["session_date"].tolist() == [dt.date(2023, 1, 5)] * 3
        assert joined["session_number"].tolist() == [1, 1, 1]
        assert joined["pool_length"].tolist() == [25.0, 25.0, 25.0]
        assert joined["total_elapsed_time"].tolist() == [30.0, 31.0, 35.0]

    def test_missing_session_keeps_laps(self, laps, sessions):
        """Laps of a file without session metadata get null session fields."""
        enriched = derive_enriched_laps(laps, sessions)
        orphan = enriched.iloc[3]

        assert len(enriched) == 4
        assert pd.isna(orphan["session_date"])
        assert pd.isna(orphan["session_number"])
        assert pd.isna(orphan["pool_length"])
        assert orphan["lap_index"] == 1
        assert orphan["pos_within_set"] == 1.0

    def test_without_any_sessions(self, laps):
        enriched = derive_enriched_laps(laps, None)
        assert len(enriched) == 4
        assert enriched["session_number"].isna().all()

    def test_duplicate_sessions_do_not_duplicate_laps(self, laps, sessions):
        doubled = pd.concat([sessions, sessions], ignore_index=True)
        enriched = derive_enriched_laps(laps, doubled)
        assert len(enriched) == 4

    def test_no_laps(self, sessions):
        enriched = derive_enriched_laps(laps_to_frame([]), sessions)
        assert enriched.empty
        assert list(enriched.columns) == Columns.ENRICHED


class TestEnrichedLapsCsv:
    @pytest.fixture
    def enriched(self):
        laps = laps_to_frame(
            make_laps(
                "a.fit",
                [("active", "freestyle", 30.0), ("active", "freestyle", 31.0), ("idle", None, 20.0), ("active", "backstroke", 35.0)],
            )
            + make_laps("orphan.fit", [("active", "freestyle", 28.0)])
        )
        sessions = sessions_to_frame(
            [SessionRecord(file_id="a.fit", session_date=dt.date(2023, 1, 5), pool_length=25.0, session_number=1)]
        )
        return derive_enriched_laps(laps, sessions)

    def test_csv_layout(self, enriched, tmp_path):
        path = write_enriched_laps(enriched, tmp_path / "laps.csv")
        lines = path.read_text().splitlines()

        assert lines[0] == ",".join(Columns.ENRICHED)
        assert lines[1] == "2023-01-05,1,25.0,30.0,1,1,1,0.25,0.5,freestyle"
        assert lines[3] == "2023-01-05,1,25.0,35.0,2,4,1,1.0,1.0,backstroke"
        assert lines[4] == ",,,28.0,1,1,1,1.0,1.0,freestyle"

    def test_written_twice_is_identical(self, enriched, tmp_path):
        first = write_enriched_laps(enriched, tmp_path / "first.csv")
        second = write_enriched_laps(enriched, tmp_path / "second.csv")
        assert first.read_bytes() == second.read_bytes()

    def test_read_back(self, enriched, tmp_path):
        path = write_enriched_laps(enriched, tmp_path / "laps.csv")
        loaded = read_enriched_laps(path)

        assert list(loaded.columns) == Columns.ENRICHED
        assert loaded["session_date"].iloc[0] == dt.date(2023, 1, 5)
        assert loaded["lap_index"].tolist() == [1, 2, 4, 1]
        assert loaded["pos_within_workout"].tolist() == enriched["pos_within_workout"].tolist()
