"""Encoders for PLS XML, CSV and TSV lexicon files."""

from __future__ import annotations

import csv
import io
import logging
import re
from collections.abc import Iterable, Iterator

from lxml import etree

from pls_editor.importer import TABULAR_HEADERS, XML_NS
from pls_editor.models import SAY_AS_VALUES, ExportFile, LexiconEntry, LexiconFormat

logger = logging.getLogger(__name__)

PLS_NS = "http://www.w3.org/2005/01/pronunciation-lexicon"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
SCHEMA_LOCATION = (
    f"{PLS_NS} "
    "http://www.w3.org/TR/2007/CR-pronunciation-lexicon-20071212/pls.xsd"
)

MEDIA_TYPES = {
    LexiconFormat.XML: "application/xml",
    LexiconFormat.CSV: "text/csv;charset=utf-8",
    LexiconFormat.TSV: "text/tab-separated-values;charset=utf-8",
}

_BOM = "\ufeff"
_TSV_UNSAFE = re.compile(r"[\t\r\n]")


def _say_as(value: str) -> str | None:
    value = value.strip()
    return value if value in SAY_AS_VALUES else None


def _pls(tag: str) -> str:
    return f"{{{PLS_NS}}}{tag}"


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------

def encode_xml(entries: Iterable[LexiconEntry], language: str) -> str:
    """Serialize entries as a PLS 1.0 document.

    Unknown ``interpret-as`` values are dropped rather than written.
    """
    root = etree.Element(_pls("lexicon"), nsmap={None: PLS_NS, "xsi": XSI_NS})
    root.set("version", "1.0")
    root.set(f"{{{XML_NS}}}lang", language)
    root.set(f"{{{XSI_NS}}}schemaLocation", SCHEMA_LOCATION)
    root.set("alphabet", "ipa")

    for entry in entries:
        lexeme = etree.SubElement(root, _pls("lexeme"))
        for grapheme in entry.graphemes:
            etree.SubElement(lexeme, _pls("grapheme")).text = grapheme
        if entry.alias:
            alias = etree.SubElement(lexeme, _pls("alias"))
            alias.text = entry.alias
            say_as = _say_as(entry.alias_say_as)
            if say_as:
                alias.set("interpret-as", say_as)
        if entry.phoneme:
            phoneme = etree.SubElement(lexeme, _pls("phoneme"))
            phoneme.text = entry.phoneme
            say_as = _say_as(entry.phoneme_say_as)
            if say_as:
                phoneme.set("interpret-as", say_as)

    return etree.tostring(
        root, pretty_print=True, xml_declaration=True, encoding="utf-8",
    ).decode("utf-8")


# ---------------------------------------------------------------------------
# CSV / TSV
# ---------------------------------------------------------------------------

def _rows(entries: Iterable[LexiconEntry]) -> Iterator[list[str]]:
    # one row per grapheme
    for entry in entries:
        for grapheme in entry.graphemes:
            yield [
                grapheme,
                entry.alias,
                entry.alias_say_as,
                entry.phoneme,
                entry.phoneme_say_as,
            ]


def encode_csv(entries: Iterable[LexiconEntry]) -> str:
    """RFC 4180 CSV with a header row; fields quoted only when needed."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerow(TABULAR_HEADERS)
    writer.writerows(_rows(entries))
    return buf.getvalue()


def encode_tsv(entries: Iterable[LexiconEntry]) -> str:
    """Tab separated rows; tabs and line breaks inside fields become spaces."""
    lines = ["\t".join(TABULAR_HEADERS)]
    for row in _rows(entries):
        lines.append("\t".join(_TSV_UNSAFE.sub(" ", cell) for cell in row))
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Export files
# ---------------------------------------------------------------------------

def export_basename(filename: str | None) -> str:
    """File name without its lexicon extension, ``lexicon`` if unnamed."""
    if not filename:
        return "lexicon"
    return re.sub(r"\.(xml|csv|tsv)$", "", filename, flags=re.IGNORECASE)


def export_lexicon(
    entries: Iterable[LexiconEntry],
    language: str,
    fmt: LexiconFormat | str,
    basename: str,
) -> ExportFile:
    """Render *entries* as a downloadable file.

    CSV and TSV are prefixed with a byte-order mark so spreadsheet
    applications detect UTF-8.
    """
    fmt = LexiconFormat(fmt)
    if fmt is LexiconFormat.XML:
        content = encode_xml(entries, language)
    elif fmt is LexiconFormat.CSV:
        content = _BOM + encode_csv(entries)
    else:
        content = _BOM + encode_tsv(entries)
    filename = f"{basename}.{fmt.value}"
    logger.info("Exported %s", filename)
    return ExportFile(filename=filename, content=content, media_type=MEDIA_TYPES[fmt])
