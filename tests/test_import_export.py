"""Tests for decoding and encoding PLS XML, CSV and TSV."""

import pytest
from lxml import etree

from pls_editor import (
    LexiconEntry,
    LexiconFormat,
    StructuralParseError,
    decode_csv,
    decode_lexicon,
    decode_tsv,
    decode_xml,
    detect_format,
    encode_csv,
    encode_tsv,
    encode_xml,
    export_lexicon,
    parse_merge_source,
)
from pls_editor.exporter import PLS_NS, export_basename

HEADER = "grapheme,alias,alias_say_as,phoneme,phoneme_say_as"


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------
class TestDecodeXML:
    def test_sample(self, sample_xml):
        parsed = decode_xml(sample_xml)
        assert parsed.language == "en-US"
        assert [e.graphemes for e in parsed.entries] == [
            ("tomato",), ("AWS",), ("cheese", "Cheese"),
        ]
        aws = parsed.entries[1]
        assert aws.alias == "Amazon Web Services"
        assert aws.alias_say_as == "characters"
        assert aws.phoneme == ""

    def test_entry_is_synonym_of_lexeme(self):
        xml = (
            '<lexicon xml:lang="de-DE">'
            "<entry><grapheme>Hund</grapheme><phoneme>hʊnt</phoneme></entry>"
            "<lexeme><grapheme>Katze</grapheme><alias>Mieze</alias></lexeme>"
            "</lexicon>"
        )
        parsed = decode_xml(xml)
        assert parsed.language == "de-DE"
        assert [e.graphemes[0] for e in parsed.entries] == ["Hund", "Katze"]

    def test_missing_language_defaults(self):
        parsed = decode_xml(
            "<lexicon><lexeme><grapheme>a</grapheme><alias>b</alias></lexeme></lexicon>"
        )
        assert parsed.language == "en-US"

    def test_leading_bom(self, sample_xml):
        assert len(decode_xml("\ufeff" + sample_xml).entries) == 3

    def test_declared_encoding_ignored_for_text(self):
        xml = (
            '<?xml version="1.0" encoding="ISO-8859-1"?>\n'
            '<lexicon xml:lang="fr-FR">'
            "<lexeme><grapheme>caf\u00e9</grapheme><phoneme>kafe</phoneme></lexeme>"
            "</lexicon>"
        )
        parsed = decode_xml(xml)
        assert parsed.entries[0].graphemes == ("caf\u00e9",)

    def test_malformed(self):
        with pytest.raises(StructuralParseError, match="malformed") as exc:
            decode_xml("<lexicon>\n<lexeme><grapheme>a</lexeme>\n</lexicon>")
        assert exc.value.line is not None

    def test_wrong_root(self):
        with pytest.raises(StructuralParseError, match="no lexicon element"):
            decode_xml("<settings/>")

    def test_no_entries(self):
        with pytest.raises(StructuralParseError, match="No entries or lexemes"):
            decode_xml('<lexicon xml:lang="en-US"></lexicon>')


class TestEncodeXML:
    def test_document_shape(self, sample_entries):
        root = etree.fromstring(encode_xml(sample_entries, "en-GB").encode("utf-8"))
        assert root.tag == f"{{{PLS_NS}}}lexicon"
        assert root.get("version") == "1.0"
        assert root.get("alphabet") == "ipa"
        assert root.get("{http://www.w3.org/XML/1998/namespace}lang") == "en-GB"
        assert len(root) == 3

    def test_unknown_say_as_dropped(self):
        entry = LexiconEntry(graphemes=("x",), alias="ex", alias_say_as="bogus")
        assert "interpret-as" not in encode_xml([entry], "en-US")

    def test_empty_alias_and_phoneme_omitted(self):
        entry = LexiconEntry(graphemes=("x",), alias="ex")
        assert "phoneme" not in encode_xml([entry], "en-US")

    def test_escapes_special_characters(self):
        entry = LexiconEntry(graphemes=("R&D",), alias="<research>")
        xml = encode_xml([entry], "en-US")
        assert "R&amp;D" in xml
        assert decode_xml(xml).entries[0] == entry

    def test_round_trip(self, sample_entries):
        parsed = decode_xml(encode_xml(sample_entries, "en-US"))
        assert list(parsed.entries) == sample_entries


# ---------------------------------------------------------------------------
# CSV / TSV
# ---------------------------------------------------------------------------
class TestDecodeCSV:
    def test_rows_grouped_by_shared_pronunciation(self):
        text = f"{HEADER}\ndog,,,dɒg,\ndoggie,,,dɒg,"
        assert decode_csv(text) == [
            LexiconEntry(graphemes=("dog", "doggie"), phoneme="dɒg")
        ]

    def test_header_order_is_free(self):
        text = "phoneme,grapheme,alias,alias_say_as,phoneme_say_as\nkæt,cat,,,\n"
        assert decode_csv(text) == [LexiconEntry(graphemes=("cat",), phoneme="kæt")]

    def test_bom_comments_and_blank_lines(self):
        text = f"\ufeff{HEADER}\r\n# vendor notes\r\n\r\ncat,,,kæt,\r\n"
        assert decode_csv(text) == [LexiconEntry(graphemes=("cat",), phoneme="kæt")]

    def test_quoted_fields(self):
        text = f'{HEADER}\n"Smith, J.","John ""JJ"" Smith",,,\n'
        entry = decode_csv(text)[0]
        assert entry.graphemes == ("Smith, J.",)
        assert entry.alias == 'John "JJ" Smith'

    def test_rows_without_grapheme_skipped(self):
        text = f"{HEADER}\n,orphan,,,\ncat,,,kæt,\n"
        assert len(decode_csv(text)) == 1

    def test_missing_headers(self):
        with pytest.raises(StructuralParseError, match="correct headers"):
            decode_csv("grapheme,alias\ncat,kitty\n")

    def test_header_only(self):
        with pytest.raises(StructuralParseError, match="at least a header row"):
            decode_csv(HEADER + "\n")


class TestDecodeTSV:
    def test_grouping(self):
        text = (
            "grapheme\talias\talias_say_as\tphoneme\tphoneme_say_as\n"
            "AWS\tAmazon Web Services\tcharacters\t\t\n"
            "aws\tAmazon Web Services\tcharacters\t\t\n"
        )
        assert decode_tsv(text) == [
            LexiconEntry(
                graphemes=("AWS", "aws"),
                alias="Amazon Web Services",
                alias_say_as="characters",
            )
        ]

    def test_missing_headers(self):
        with pytest.raises(StructuralParseError, match="TSV file"):
            decode_tsv("grapheme\tphoneme\ncat\tkæt\n")


class TestEncodeTabular:
    def test_csv_one_row_per_grapheme(self, sample_entries):
        lines = encode_csv(sample_entries).split("\r\n")
        assert lines[0] == HEADER
        assert lines[2] == "cheese,,,tʃiːz,"
        assert lines[3] == "Cheese,,,tʃiːz,"

    def test_csv_round_trip_with_awkward_fields(self):
        entries = [
            LexiconEntry(graphemes=("Smith, J.",), alias='say "hi"\nthere'),
            LexiconEntry(graphemes=("cat",), phoneme="kæt"),
        ]
        assert decode_csv(encode_csv(entries)) == entries

    def test_tsv_replaces_separators(self):
        entry = LexiconEntry(graphemes=("a\tb",), alias="line\none")
        lines = encode_tsv([entry]).splitlines()
        assert lines[1] == "a b\tline one\t\t\t"

    def test_tsv_round_trip(self, sample_entries):
        assert decode_tsv(encode_tsv(sample_entries)) == sample_entries


# ---------------------------------------------------------------------------
# Format detection and entry points
# ---------------------------------------------------------------------------
class TestDetectFormat:
    @pytest.mark.parametrize("filename, text, expected", [
        ("a.csv", "", LexiconFormat.CSV),
        ("a.tsv", "", LexiconFormat.TSV),
        ("a.txt", "", LexiconFormat.TSV),
        ("a.xml", "<lexicon/>", LexiconFormat.XML),
        ("upload", HEADER + "\n", LexiconFormat.CSV),
        ("upload", HEADER.replace(",", "\t") + "\n", LexiconFormat.TSV),
        ("upload", "<lexicon/>", LexiconFormat.XML),
    ])
    def test_detection(self, filename, text, expected):
        assert detect_format(filename, text) is expected


class TestDecodeLexicon:
    def test_csv_takes_default_language(self):
        parsed = decode_lexicon(
            "vendor.csv", f"{HEADER}\ncat,,,kæt,\n", default_language="fr-FR"
        )
        assert parsed.language == "fr-FR"

    def test_xml_keeps_own_language(self, sample_xml):
        parsed = decode_lexicon("main.xml", sample_xml, default_language="fr-FR")
        assert parsed.language == "en-US"


class TestParseMergeSource:
    def test_issues_reported_instead_of_entries(self):
        text = f"{HEADER}\ncat,,,kæt,\nR&D,research,,,\n"
        source = parse_merge_source("vendor.csv", text)
        assert [e.graphemes for e in source.entries] == [("cat",)]
        assert len(source.issues) == 1
        issue = source.issues[0]
        assert issue.entry_number == 2
        assert issue.message == "Entry 2 contains problematic characters: &"
        assert issue.line_number == 3
        assert issue.entry_content == (
            "Graphemes: ['R&D'], Alias: research, Phoneme: none"
        )

    def test_xml_lines(self):
        xml = (
            '<lexicon xml:lang="en-US">\n'
            "<lexeme><grapheme>ok</grapheme><alias>fine</alias></lexeme>\n"
            "<lexeme><grapheme>empty</grapheme></lexeme>\n"
            "</lexicon>"
        )
        source = parse_merge_source("vendor.xml", xml)
        assert source.issues[0].line_number == 3
        assert "must have either an alias or phoneme" in source.issues[0].message

    def test_unparseable(self):
        with pytest.raises(StructuralParseError):
            parse_merge_source("vendor.xml", "<lexicon>")


class TestExportLexicon:
    def test_xml(self, sample_entries):
        export = export_lexicon(sample_entries, "en-US", "xml", "main")
        assert export.filename == "main.xml"
        assert export.media_type == "application/xml"
        assert export.content.startswith("<?xml")

    def test_csv_has_bom(self, sample_entries):
        export = export_lexicon(sample_entries, "en-US", LexiconFormat.CSV, "main")
        assert export.filename == "main.csv"
        assert export.media_type == "text/csv;charset=utf-8"
        assert export.content.startswith("\ufeff" + HEADER)

    def test_tsv_has_bom(self, sample_entries):
        export = export_lexicon(sample_entries, "en-US", "tsv", "main")
        assert export.content.startswith("\ufeffgrapheme\talias")
        assert export.media_type == "text/tab-separated-values;charset=utf-8"

    def test_exported_csv_reimports(self, sample_entries):
        export = export_lexicon(sample_entries, "en-US", "csv", "main")
        parsed = decode_lexicon(export.filename, export.content)
        assert list(parsed.entries) == sample_entries

    @pytest.mark.parametrize("filename, expected", [
        ("main.xml", "main"),
        ("Main.XML", "Main"),
        ("vendor.csv", "vendor"),
        (None, "lexicon"),
        ("", "lexicon"),
    ])
    def test_basename(self, filename, expected):
        assert export_basename(filename) == expected
