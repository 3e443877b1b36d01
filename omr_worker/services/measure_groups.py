"""Measure groups and per-group MusicXML sub-documents.

A score of N measures is previewed in fixed windows of two measures:
``[1-2], [3-4], …``, with a narrower final window when N is odd. The
partition depends only on N.

``slice_measures`` cuts a MusicXML document down to one window so each
preview image shows just those measures. Measures are addressed by their
1-based position inside each ``<part>`` (``number`` attributes in OMR
output are not reliable). Attributes that were in force before the
window (divisions, key, time, clef, …) are carried into its first measure
so the excerpt renders with the right clef and signatures.
"""
from __future__ import annotations

import copy
import xml.etree.ElementTree as ET
from dataclasses import dataclass

MEASURES_PER_GROUP: int = 2

# MusicXML schema order for children of <attributes>.
_ATTRIBUTE_ORDER: tuple[str, ...] = (
    "footnote",
    "level",
    "divisions",
    "key",
    "time",
    "staves",
    "part-symbol",
    "instruments",
    "clef",
    "staff-details",
    "transpose",
    "directive",
    "measure-style",
)


@dataclass(frozen=True)
class MeasureGroup:
    """A contiguous window ``[start, end]`` of 1-based measure numbers.

    Attributes:
        number: 1-based ordinal of the group within the score.
        start: First measure in the group.
        end: Last measure in the group (inclusive).
    """

    number: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    @property
    def label(self) -> str:
        return f"{self.start}-{self.end}"


def partition_measures(
    total_measures: int, group_size: int = MEASURES_PER_GROUP
) -> list[MeasureGroup]:
    """Split ``1..total_measures`` into consecutive non-overlapping groups.

    Returns an empty list when ``total_measures`` is below 1.
    """
    if group_size < 1:
        raise ValueError(f"group_size must be positive, got {group_size}")
    groups: list[MeasureGroup] = []
    for index, start in enumerate(range(1, total_measures + 1, group_size)):
        end = min(start + group_size - 1, total_measures)
        groups.append(MeasureGroup(number=index + 1, start=start, end=end))
    return groups


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _attribute_key(el: ET.Element) -> tuple[str, str | None]:
    # Multi-staff parts carry one <clef number="n"> per staff.
    return _local(el.tag), el.get("number")


def _carry_attributes(measures: list[ET.Element], start: int) -> list[ET.Element]:
    """Collect the last value of each attribute child before measure ``start``."""
    state: dict[tuple[str, str | None], ET.Element] = {}
    for measure in measures[: start - 1]:
        for child in measure:
            if _local(child.tag) != "attributes":
                continue
            for attr in child:
                state[_attribute_key(attr)] = attr
    return list(state.values())


def _merge_into_first(first: ET.Element, carried: list[ET.Element], ns: str) -> None:
    if not carried:
        return
    attributes = None
    for child in first:
        if _local(child.tag) == "attributes":
            attributes = child
            break
    if attributes is None:
        attributes = ET.Element(f"{ns}attributes")
        first.insert(0, attributes)

    present = {_attribute_key(attr) for attr in attributes}
    merged = list(attributes) + [
        copy.deepcopy(attr) for attr in carried if _attribute_key(attr) not in present
    ]
    order = {name: i for i, name in enumerate(_ATTRIBUTE_ORDER)}
    merged.sort(key=lambda el: order.get(_local(el.tag), len(order)))
    for attr in list(attributes):
        attributes.remove(attr)
    attributes.extend(merged)


def slice_measures(xml_bytes: bytes, start: int, end: int) -> bytes:
    """Return a MusicXML document holding only measures ``start..end`` of every part.

    Raises:
        ValueError: The document cannot be parsed, is not ``<score-partwise>``,
            or has no measure in the requested window.
    """
    if start < 1 or end < start:
        raise ValueError(f"Invalid measure window {start}-{end}")
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as exc:
        raise ValueError(f"Cannot parse MusicXML: {exc}") from exc
    if _local(root.tag) != "score-partwise":
        raise ValueError(f"Cannot slice <{_local(root.tag)}> documents")

    ns = root.tag[: root.tag.index("}") + 1] if root.tag.startswith("{") else ""
    kept_any = False
    for part in root.findall(f"{ns}part"):
        measures = part.findall(f"{ns}measure")
        window = measures[start - 1 : end]
        if not window:
            continue
        kept_any = True
        carried = _carry_attributes(measures, start)
        for position, measure in enumerate(measures, start=1):
            if not start <= position <= end:
                part.remove(measure)
        _merge_into_first(window[0], carried, ns)

    if not kept_any:
        raise ValueError(f"No measures in window {start}-{end}")
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
