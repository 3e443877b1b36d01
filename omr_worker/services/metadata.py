"""MusicXML → score metadata.

Maps a ``<score-partwise>`` document onto a flat ``ScoreMetadata`` record
(title, composer, instrument, clef, key, time signature, measure count,
tempo, style). Each field has its own default, so a sparse but valid
document still yields a complete record. A document that is not MusicXML
at all (unparseable, wrong root, no ``<part-list>``) raises
``MetadataError``; the pipeline then substitutes ``default_metadata()``.

Parsing uses the standard library ``xml.etree.ElementTree``, with the
same namespace-stripping helper as the rest of the codebase.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from omr_worker.config import DEFAULT_MEASURE_COUNT, DEFAULT_TEMPO

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"
DEFAULT_COMPOSER = "Unknown"
DEFAULT_INSTRUMENT = "Piano"
DEFAULT_CLEF = "treble"
DEFAULT_KEY_SIGNATURE = "C major"
DEFAULT_TIME_SIGNATURE = "4/4"
DEFAULT_STYLE = "Classical"

# Circle of fifths: number of sharps (+) or flats (−) → major key name.
KEY_SIGNATURES: dict[int, str] = {
    -7: "Cb major",
    -6: "Gb major",
    -5: "Db major",
    -4: "Ab major",
    -3: "Eb major",
    -2: "Bb major",
    -1: "F major",
    0: "C major",
    1: "G major",
    2: "D major",
    3: "A major",
    4: "E major",
    5: "B major",
    6: "F# major",
    7: "C# major",
}


class MetadataError(Exception):
    """Raised when a notation document is not structurally valid MusicXML."""


@dataclass(frozen=True)
class ScoreMetadata:
    """Semantic summary of a score, derived once and never mutated."""

    title: str = DEFAULT_TITLE
    composer: str = DEFAULT_COMPOSER
    instrument: str = DEFAULT_INSTRUMENT
    clef: str = DEFAULT_CLEF
    key_signature: str = DEFAULT_KEY_SIGNATURE
    time_signature: str = DEFAULT_TIME_SIGNATURE
    measure_count: int = DEFAULT_MEASURE_COUNT
    tempo: int | None = DEFAULT_TEMPO
    style: str | None = DEFAULT_STYLE


def default_metadata(measure_count: int = DEFAULT_MEASURE_COUNT) -> ScoreMetadata:
    """The fixed record used when extraction fails."""
    return ScoreMetadata(measure_count=measure_count)


def key_signature_name(fifths: int | None) -> str:
    """Map a ``<fifths>`` value to its major-key name; out-of-range → C major."""
    if fifths is None:
        return DEFAULT_KEY_SIGNATURE
    return KEY_SIGNATURES.get(fifths, DEFAULT_KEY_SIGNATURE)


def clef_name(sign: str | None, line: str | None) -> str:
    """G on line 2 is treble, F on line 4 is bass; anything else reads as treble."""
    sign = (sign or "").strip().upper()
    line = (line or "").strip()
    if sign == "G" and line == "2":
        return "treble"
    if sign == "F" and line == "4":
        return "bass"
    return DEFAULT_CLEF


def _text(el: ET.Element | None) -> str | None:
    if el is None or el.text is None:
        return None
    value = el.text.strip()
    return value or None


def _int_or_none(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_metadata(xml_text: str | bytes) -> ScoreMetadata:
    """Parse MusicXML text (or raw bytes) into ``ScoreMetadata``.

    Raises:
        MetadataError: Unparseable XML, a root other than ``<score-partwise>``,
            or a missing ``<part-list>``.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise MetadataError(f"Cannot parse MusicXML: {exc}") from exc

    # Strip XML namespace prefix, e.g. {http://www.musicxml.org/…}element → element
    ns = ""
    if root.tag.startswith("{"):
        ns = root.tag[: root.tag.index("}") + 1]

    def t(name: str) -> str:
        return f"{ns}{name}"

    if root.tag != t("score-partwise"):
        raise MetadataError(
            f"Unrecognised MusicXML root element '{root.tag}'. Expected <score-partwise>."
        )
    part_list = root.find(t("part-list"))
    if part_list is None:
        raise MetadataError("MusicXML document has no <part-list>")

    title = (
        _text(root.find(f"{t('work')}/{t('work-title')}"))
        or _text(root.find(t("movement-title")))
        or DEFAULT_TITLE
    )

    composer = DEFAULT_COMPOSER
    identification = root.find(t("identification"))
    if identification is not None:
        for creator in identification.findall(t("creator")):
            if creator.get("type") == "composer" and _text(creator):
                composer = _text(creator) or DEFAULT_COMPOSER
                break

    instrument = DEFAULT_INSTRUMENT
    score_part = part_list.find(t("score-part"))
    if score_part is not None:
        instrument = _text(score_part.find(t("part-name"))) or DEFAULT_INSTRUMENT

    part = root.find(t("part"))
    measures = part.findall(t("measure")) if part is not None else []

    attributes = measures[0].find(t("attributes")) if measures else None
    key_signature = DEFAULT_KEY_SIGNATURE
    time_signature = DEFAULT_TIME_SIGNATURE
    clef = DEFAULT_CLEF
    if attributes is not None:
        key_signature = key_signature_name(
            _int_or_none(_text(attributes.find(f"{t('key')}/{t('fifths')}")))
        )
        time_el = attributes.find(t("time"))
        if time_el is not None:
            beats = _text(time_el.find(t("beats"))) or "4"
            beat_type = _text(time_el.find(t("beat-type"))) or "4"
            time_signature = f"{beats}/{beat_type}"
        clef_el = attributes.find(t("clef"))
        if clef_el is not None:
            clef = clef_name(_text(clef_el.find(t("sign"))), _text(clef_el.find(t("line"))))

    tempo: int | None = DEFAULT_TEMPO
    if part is not None:
        for sound in part.iter(t("sound")):
            raw = sound.get("tempo")
            if raw is None:
                continue
            try:
                tempo = round(float(raw))
                break
            except (ValueError, OverflowError):
                continue

    return ScoreMetadata(
        title=title,
        composer=composer,
        instrument=instrument,
        clef=clef,
        key_signature=key_signature,
        time_signature=time_signature,
        measure_count=len(measures),
        tempo=tempo,
        style=DEFAULT_STYLE,
    )


def extract_metadata(document_path: Path) -> ScoreMetadata:
    """Read and parse the MusicXML file at ``document_path``.

    Raises:
        MetadataError: The file cannot be read or is not valid MusicXML.
    """
    try:
        xml_text = document_path.read_bytes()
    except OSError as exc:
        raise MetadataError(f"Cannot read notation document {document_path}: {exc}") from exc
    metadata = parse_metadata(xml_text)
    logger.debug(
        "Metadata: %s, %s, %s, %d measures",
        metadata.instrument,
        metadata.key_signature,
        metadata.time_signature,
        metadata.measure_count,
    )
    return metadata
