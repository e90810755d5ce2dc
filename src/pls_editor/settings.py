"""Reading and updating the settings document that publishes lexicons.

The document lists, per language, the lexicon URLs a TTS engine loads::

    <settings>
      <languages>
        <language id="en-US">
          <lexicons>
            <lexicon name="Main" id="https://host/lexicons/main.xml" />
          </lexicons>
        </language>
      </languages>
    </settings>
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from lxml import etree

from pls_editor.exceptions import SettingsDocumentError
from pls_editor.models import LexiconReference

_LANGUAGE_RE = re.compile(
    r"<language\b[^>]*\bid=[\"']([^\"']+)[\"'][^>]*>(.*?)</language>",
    re.IGNORECASE | re.DOTALL,
)
_LEXICON_RE = re.compile(r"<lexicon\b[^>]*/?>", re.IGNORECASE)
_ATTR_RE = re.compile(r"\b(name|id)=[\"']([^\"']*)[\"']", re.IGNORECASE)


def _parse(text: str) -> etree._Element:
    parser = etree.XMLParser(
        resolve_entities=False, no_network=True, remove_blank_text=True,
        encoding="utf-8",
    )
    try:
        return etree.fromstring(text.encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise SettingsDocumentError(
            f"Invalid settings.xml structure: {e.msg}"
        ) from e


def _serialize(root: etree._Element) -> str:
    return etree.tostring(
        root, pretty_print=True, xml_declaration=True, encoding="utf-8",
    ).decode("utf-8")


def new_settings_document(languages: Iterable[str] = ()) -> str:
    """An empty settings document declaring *languages*."""
    root = etree.Element("settings")
    container = etree.SubElement(root, "languages")
    for language in languages:
        etree.SubElement(container, "language", id=language)
    return _serialize(root)


def validate_settings_document(text: str) -> None:
    """Raise :class:`SettingsDocumentError` unless *text* is well formed."""
    root = _parse(text)
    try:
        if root.tag != "settings":
            raise ValueError("Missing root <settings> element")
        container = root.find("languages")
        if container is None:
            raise ValueError("Missing <languages> section")
        languages = container.findall("language")
        if not languages:
            raise ValueError("No <language> elements found")
        for language in languages:
            if not language.get("id"):
                raise ValueError('Language missing required "id" attribute')
            for lexicon in language.iterfind("lexicons/lexicon"):
                if not lexicon.get("id") or not lexicon.get("name"):
                    raise ValueError(
                        'Lexicon missing required "id" or "name" attribute'
                    )
    except ValueError as e:
        raise SettingsDocumentError(f"Invalid settings.xml structure: {e}") from e


def parse_references(text: str) -> dict[str, list[LexiconReference]]:
    """Map language id to its published lexicons.

    Falls back to a lenient pattern scan when the document is not well
    formed, so a damaged document still reports what it publishes.
    """
    try:
        root = _parse(text)
    except SettingsDocumentError:
        return _scan_references(text)

    published: dict[str, list[LexiconReference]] = {}
    for language in root.iterfind("languages/language"):
        language_id = language.get("id")
        if not language_id:
            continue
        published[language_id] = [
            LexiconReference(language_id, lexicon.get("name", ""), lexicon.get("id", ""))
            for lexicon in language.iterfind("lexicons/lexicon")
        ]
    return published


def _scan_references(text: str) -> dict[str, list[LexiconReference]]:
    published: dict[str, list[LexiconReference]] = {}
    for match in _LANGUAGE_RE.finditer(text):
        language_id, body = match.group(1), match.group(2)
        refs = published.setdefault(language_id, [])
        for tag in _LEXICON_RE.findall(body):
            attrs = {k.lower(): v for k, v in _ATTR_RE.findall(tag)}
            if "id" in attrs:
                refs.append(LexiconReference(language_id, attrs.get("name", ""), attrs["id"]))
    return published


def is_referenced(text: str, name: str) -> bool:
    """Whether the lexicon file *name* appears anywhere in the document."""
    return bool(name) and name in text


def _language(root: etree._Element, language: str) -> etree._Element:
    for element in root.iterfind("languages/language"):
        if element.get("id", "").lower() == language.lower():
            return element
    raise SettingsDocumentError("Language not found")


def add_reference(text: str, language: str, name: str, url: str) -> str:
    """Return *text* with a lexicon reference added under *language*."""
    root = _parse(text)
    element = _language(root, language)
    lexicons = element.find("lexicons")
    if lexicons is None:
        lexicons = etree.SubElement(element, "lexicons")
    if any(lex.get("id") == url for lex in lexicons.iterfind("lexicon")):
        raise SettingsDocumentError("Lexicon already exists in settings")
    etree.SubElement(lexicons, "lexicon", name=name, id=url)
    return _serialize(root)


def remove_reference(text: str, language: str, url: str) -> str:
    """Return *text* without the reference to *url* under *language*.

    When no reference has exactly that URL, one ending in the same file
    name is removed instead. An emptied ``<lexicons>`` section is dropped.
    """
    root = _parse(text)
    element = _language(root, language)
    lexicons = element.find("lexicons")
    if lexicons is None:
        raise SettingsDocumentError("No lexicons section found")

    entries = lexicons.findall("lexicon")
    target = next((lex for lex in entries if lex.get("id") == url), None)
    if target is None:
        filename = url.rsplit("/", 1)[-1]
        target = next(
            (lex for lex in entries if lex.get("id", "").endswith(filename)), None
        )
    if target is None:
        raise SettingsDocumentError("Lexicon not found in settings")

    lexicons.remove(target)
    if len(lexicons) == 0:
        element.remove(lexicons)
    return _serialize(root)
