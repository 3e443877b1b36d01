"""Tests for measure-group partitioning and per-group MusicXML excerpts."""
from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from omr_worker.services.measure_groups import (
    MEASURES_PER_GROUP,
    MeasureGroup,
    partition_measures,
    slice_measures,
)


class TestPartitionMeasures:
    @pytest.mark.parametrize("total", list(range(1, 41)))
    def test_covers_every_measure_exactly_once(self, total: int) -> None:
        groups = partition_measures(total)
        covered = [m for g in groups for m in range(g.start, g.end + 1)]
        assert covered == list(range(1, total + 1))
        for g in groups:
            assert 1 <= g.start <= g.end <= total
            assert 1 <= g.size <= MEASURES_PER_GROUP
        assert groups[-1].size == (1 if total % 2 else 2)

    def test_groups_are_ascending_and_numbered(self) -> None:
        groups = partition_measures(7)
        assert [g.number for g in groups] == [1, 2, 3, 4]
        assert [(g.start, g.end) for g in groups] == [(1, 2), (3, 4), (5, 6), (7, 7)]

    def test_single_measure(self) -> None:
        assert partition_measures(1) == [MeasureGroup(number=1, start=1, end=1)]

    @pytest.mark.parametrize("total", [0, -3])
    def test_no_measures_gives_no_groups(self, total: int) -> None:
        assert partition_measures(total) == []

    def test_rejects_non_positive_group_size(self) -> None:
        with pytest.raises(ValueError):
            partition_measures(4, group_size=0)

    def test_label(self) -> None:
        assert MeasureGroup(number=2, start=3, end=4).label == "3-4"


def _measures(xml: bytes) -> list[ET.Element]:
    root = ET.fromstring(xml)
    return root.find("part").findall("measure")


class TestSliceMeasures:
    def test_keeps_only_window(self, sample_musicxml: str) -> None:
        out = slice_measures(sample_musicxml.encode(), 3, 4)
        assert [m.get("number") for m in _measures(out)] == ["3", "4"]

    def test_carries_opening_attributes_into_window(self, sample_musicxml: str) -> None:
        out = slice_measures(sample_musicxml.encode(), 5, 5)
        (only,) = _measures(out)
        attrs = only.find("attributes")
        assert attrs is not None
        assert attrs.findtext("divisions") == "2"
        # measure 3 changed the key; the latest value wins
        assert attrs.findtext("key/fifths") == "2"
        assert attrs.findtext("time/beats") == "3"
        assert attrs.findtext("clef/sign") == "F"

    def test_existing_attributes_take_precedence_and_keep_schema_order(
        self, sample_musicxml: str
    ) -> None:
        out = slice_measures(sample_musicxml.encode(), 3, 4)
        attrs = _measures(out)[0].find("attributes")
        assert attrs.findtext("key/fifths") == "2"
        assert [child.tag for child in attrs] == ["divisions", "key", "time", "clef"]

    def test_first_window_unchanged_attributes(self, sample_musicxml: str) -> None:
        out = slice_measures(sample_musicxml.encode(), 1, 2)
        first = _measures(out)[0]
        assert len(first.findall("attributes")) == 1
        assert first.findtext("attributes/key/fifths") == "-3"

    def test_window_past_end_raises(self, sample_musicxml: str) -> None:
        with pytest.raises(ValueError):
            slice_measures(sample_musicxml.encode(), 9, 10)

    def test_invalid_window_raises(self, sample_musicxml: str) -> None:
        with pytest.raises(ValueError):
            slice_measures(sample_musicxml.encode(), 3, 2)

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            slice_measures(b"not xml at all", 1, 2)

    def test_timewise_rejected(self) -> None:
        with pytest.raises(ValueError):
            slice_measures(b"<score-timewise/>", 1, 1)

    def test_namespaced_document(self) -> None:
        xml = (
            b'<score-partwise xmlns="urn:x"><part-list/><part id="P1">'
            b'<measure number="1"/><measure number="2"/><measure number="3"/>'
            b"</part></score-partwise>"
        )
        out = slice_measures(xml, 2, 3)
        root = ET.fromstring(out)
        part = root.find("{urn:x}part")
        assert [m.get("number") for m in part.findall("{urn:x}measure")] == ["2", "3"]
