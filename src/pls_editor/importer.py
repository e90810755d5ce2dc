"""Decoders for PLS XML, CSV and TSV lexicon files."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterator

from lxml import etree

from pls_editor.exceptions import StructuralParseError
from pls_editor.models import (
    LexiconEntry,
    LexiconFormat,
    MergeSource,
    ParsedLexicon,
    ParseIssue,
)
from pls_editor.validator import structural_problems

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en-US"
XML_NS = "http://www.w3.org/XML/1998/namespace"
TABULAR_HEADERS = ("grapheme", "alias", "alias_say_as", "phoneme", "phoneme_say_as")

_BOM = "\ufeff"

# (entry, source line) pairs; line is None when unknown
_Located = list[tuple[LexiconEntry, int | None]]


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith(_BOM) else text


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------

def detect_format(filename: str, text: str) -> LexiconFormat:
    """Guess the format of an uploaded file from its name and first line."""
    name = filename.lower()
    first_line = _strip_bom(text).split("\n", 1)[0]
    has_header = "grapheme" in first_line
    if name.endswith(".csv") or (
        has_header and "," in first_line and "\t" not in first_line
    ):
        return LexiconFormat.CSV
    if name.endswith((".tsv", ".txt")) or (has_header and "\t" in first_line):
        return LexiconFormat.TSV
    return LexiconFormat.XML


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------

def _local(element: etree._Element) -> str:
    return etree.QName(element).localname


def _text(element: etree._Element | None) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def _child(element: etree._Element, name: str) -> etree._Element | None:
    for child in element:
        if isinstance(child.tag, str) and _local(child) == name:
            return child
    return None


def _parse_xml_root(text: str) -> etree._Element:
    parser = etree.XMLParser(
        resolve_entities=False, no_network=True, remove_comments=True,
        encoding="utf-8",
    )
    try:
        root = etree.fromstring(_strip_bom(text).encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise StructuralParseError(
            f"XML parsing failed - the file structure is malformed: {e.msg}",
            line=e.lineno,
        ) from e
    if root is None or _local(root) != "lexicon":
        raise StructuralParseError(
            "Invalid lexicon format - no lexicon element found"
        )
    return root


def _lexeme_to_entry(element: etree._Element) -> LexiconEntry:
    graphemes = [
        _text(child) for child in element
        if isinstance(child.tag, str) and _local(child) == "grapheme"
    ]
    alias = _child(element, "alias")
    phoneme = _child(element, "phoneme")
    return LexiconEntry(
        graphemes=tuple(graphemes),
        alias=_text(alias),
        alias_say_as=alias.get("interpret-as", "").strip() if alias is not None else "",
        phoneme=_text(phoneme),
        phoneme_say_as=phoneme.get("interpret-as", "").strip() if phoneme is not None else "",
    )


def _decode_xml(text: str) -> tuple[str, _Located]:
    root = _parse_xml_root(text)
    language = root.get(f"{{{XML_NS}}}lang") or root.get("lang") or DEFAULT_LANGUAGE
    located: _Located = [
        (_lexeme_to_entry(el), el.sourceline)
        for el in root.iter()
        if isinstance(el.tag, str) and _local(el) in ("lexeme", "entry")
    ]
    if not located:
        raise StructuralParseError("No entries or lexemes found in the lexicon")
    return language, located


def decode_xml(text: str) -> ParsedLexicon:
    """Decode a PLS document; ``<entry>`` is read as a synonym of ``<lexeme>``."""
    language, located = _decode_xml(text)
    logger.debug("Decoded %d XML entries (%s)", len(located), language)
    return ParsedLexicon(language=language, entries=tuple(e for e, _ in located))


# ---------------------------------------------------------------------------
# CSV / TSV
# ---------------------------------------------------------------------------

def _is_skipped(cells: list[str]) -> bool:
    if not any(cell.strip() for cell in cells):
        return True
    return cells[0].lstrip().startswith("#")


def _csv_rows(text: str) -> Iterator[tuple[list[str], int]]:
    reader = csv.reader(io.StringIO(_strip_bom(text), newline=""))
    try:
        for row in reader:
            if row and not _is_skipped(row):
                yield row, reader.line_num
    except csv.Error as e:
        raise StructuralParseError(
            f"CSV parsing failed: {e}", line=reader.line_num
        ) from e


def _tsv_rows(text: str) -> Iterator[tuple[list[str], int]]:
    for number, line in enumerate(_strip_bom(text).split("\n"), start=1):
        line = line.rstrip("\r")
        if not line.strip() or line.strip().startswith("#"):
            continue
        yield line.split("\t"), number


def _group_rows(source: Iterator[tuple[list[str], int]], label: str) -> _Located:
    rows = list(source)
    if len(rows) < 2:
        raise StructuralParseError(
            f"{label} file must have at least a header row and one data row"
        )
    header = [cell.strip() for cell in rows[0][0]]
    if not all(name in header for name in TABULAR_HEADERS):
        raise StructuralParseError(
            f"{label} file must have the correct headers: "
            + ", ".join(TABULAR_HEADERS),
            line=rows[0][1],
        )
    columns = {name: header.index(name) for name in TABULAR_HEADERS}

    groups: dict[str, tuple[list[str], dict[str, str], int]] = {}
    for cells, line in rows[1:]:
        values = {
            name: cells[idx].strip() if idx < len(cells) else ""
            for name, idx in columns.items()
        }
        grapheme = values.pop("grapheme")
        if not grapheme:
            continue
        key = "|".join(values[name] for name in TABULAR_HEADERS[1:])
        if key not in groups:
            groups[key] = ([], values, line)
        groups[key][0].append(grapheme)

    return [
        (LexiconEntry(graphemes=tuple(graphemes), **values), line)
        for graphemes, values, line in groups.values()
    ]


def decode_csv(text: str) -> list[LexiconEntry]:
    """Decode CSV rows, grouping graphemes that share alias and phoneme."""
    return [entry for entry, _ in _group_rows(_csv_rows(text), "CSV")]


def decode_tsv(text: str) -> list[LexiconEntry]:
    """Decode TSV rows, grouping graphemes that share alias and phoneme."""
    return [entry for entry, _ in _group_rows(_tsv_rows(text), "TSV")]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def _decode_located(
    filename: str, text: str, default_language: str,
) -> tuple[LexiconFormat, str, _Located]:
    fmt = detect_format(filename, text)
    if fmt is LexiconFormat.CSV:
        return fmt, default_language, _group_rows(_csv_rows(text), "CSV")
    if fmt is LexiconFormat.TSV:
        return fmt, default_language, _group_rows(_tsv_rows(text), "TSV")
    language, located = _decode_xml(text)
    return fmt, language, located


def decode_lexicon(
    filename: str,
    text: str,
    *,
    default_language: str = DEFAULT_LANGUAGE,
) -> ParsedLexicon:
    """Decode any supported file; CSV and TSV take *default_language*."""
    fmt, language, located = _decode_located(filename, text, default_language)
    logger.info(
        "Imported %s as %s: %d entries", filename, fmt.value, len(located)
    )
    return ParsedLexicon(language=language, entries=tuple(e for e, _ in located))


def _describe(entry: LexiconEntry) -> str:
    return (
        f"Graphemes: {list(entry.graphemes)}, "
        f"Alias: {entry.alias or 'none'}, "
        f"Phoneme: {entry.phoneme or 'none'}"
    )


def parse_merge_source(
    filename: str,
    text: str,
    *,
    default_language: str = DEFAULT_LANGUAGE,
) -> MergeSource:
    """Decode a vendor file for merging.

    Entries failing the structural checks are reported as issues instead of
    entries. Any issue blocks the merge. A file that cannot be decoded at
    all raises :class:`StructuralParseError`.
    """
    _, language, located = _decode_located(filename, text, default_language)
    entries: list[LexiconEntry] = []
    issues: list[ParseIssue] = []
    for number, (entry, line) in enumerate(located, start=1):
        problems = structural_problems(entry)
        if not problems:
            entries.append(entry)
            continue
        issues.append(ParseIssue(
            entry_number=number,
            message=f"Entry {number} {problems[0]}",
            line_number=line,
            entry_content=_describe(entry),
            suggestion=(
                "Check that the entry has valid graphemes "
                "and either an alias or phoneme"
            ),
        ))
    if issues:
        logger.warning(
            "%s: %d problematic entries in merge source", filename, len(issues)
        )
    return MergeSource(
        filename=filename,
        language=language,
        entries=tuple(entries),
        issues=tuple(issues),
    )
