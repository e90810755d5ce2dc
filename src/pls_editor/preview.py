"""TTS preview request URLs."""

from __future__ import annotations

import time
from urllib.parse import quote, urlencode

from pls_editor.exceptions import PreviewError
from pls_editor.models import LexiconEntry


def build_preview_url(
    base_url: str,
    language: str,
    entry: LexiconEntry,
    lexicon_name: str | None = None,
    *,
    timestamp_ms: int | None = None,
) -> str:
    """URL that makes the preview service speak *entry*.

    The phoneme is spoken when present, the alias otherwise, each with its
    own say-as type.
    """
    if not any(g.strip() for g in entry.graphemes):
        raise PreviewError("Please enter graphemes to preview")
    if entry.phoneme.strip():
        script, say_as = entry.phoneme, entry.phoneme_say_as
    elif entry.alias.strip():
        script, say_as = entry.alias, entry.alias_say_as
    else:
        raise PreviewError("Please enter either a phoneme or alias to preview")

    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    params = [
        ("language", language),
        ("file", f"preview_{timestamp_ms}.mp3"),
        ("script", script),
    ]
    if lexicon_name:
        params.append(("lexicon", lexicon_name))
    if say_as.strip():
        params.append(("interpret-as", say_as))
    params.append(("autoPlay", "true"))
    return f"{base_url.rstrip('/')}/?{urlencode(params, quote_via=quote)}"
