"""
Command-line interface for checking, converting and merging lexicon files.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import EditorConfig, load_config
from .exceptions import (
    ConfigError,
    ConflictBlockingError,
    LanguageMismatchError,
    PreviewError,
    StructuralParseError,
)
from .exporter import export_basename, export_lexicon
from .importer import decode_lexicon, parse_merge_source
from .merge import analyze_merge, check_merge_source, finalize_merge, preview_merge
from .models import ConflictType, LexiconFormat, Resolution
from .preview import build_preview_url
from .validator import validate_entries

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UNRESOLVED = 2


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the pls-editor CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_ERROR

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )

    try:
        args.config = load_config(args.config_file)
    except ConfigError as e:
        print(f"\n  [CONFIG ERROR] {e}")
        if e.line:
            print(f"                Line: {e.line}")
        return EXIT_ERROR
    except FileNotFoundError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR

    return args.func(args)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pls-editor",
        description="Check, convert and merge W3C PLS pronunciation lexicons",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        dest="config_file",
        type=Path,
        help="YAML configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log progress to stderr",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check every entry of a lexicon file",
    )
    validate_parser.add_argument(
        "file",
        type=Path,
        help="XML, CSV or TSV lexicon file",
    )
    validate_parser.set_defaults(func=cmd_validate)

    # convert command
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a lexicon file to another format",
    )
    convert_parser.add_argument(
        "file",
        type=Path,
        help="XML, CSV or TSV lexicon file",
    )
    convert_parser.add_argument(
        "--to",
        dest="fmt",
        choices=[f.value for f in LexiconFormat],
        default=LexiconFormat.XML.value,
        help="Output format (default: xml)",
    )
    convert_parser.add_argument(
        "--language",
        type=str,
        help="Language of CSV/TSV input (default: from config)",
    )
    convert_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output directory (default: next to the input)",
    )
    convert_parser.set_defaults(func=cmd_convert)

    # merge command
    merge_parser = subparsers.add_parser(
        "merge",
        help="Merge a vendor lexicon into a master lexicon",
    )
    merge_parser.add_argument("master", type=Path, help="Master lexicon file")
    merge_parser.add_argument("incoming", type=Path, help="Vendor lexicon file")
    merge_parser.add_argument(
        "--resolve",
        choices=[r.value for r in Resolution],
        help="Resolution applied to every conflict",
    )
    merge_parser.add_argument(
        "--resolve-aliases",
        choices=[r.value for r in Resolution],
        help="Resolution applied to additional-alias conflicts only",
    )
    merge_parser.add_argument(
        "--resolve-conflicts",
        choices=[r.value for r in Resolution],
        help="Resolution applied to content conflicts only",
    )
    merge_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Merged XML file (default: overwrite master)",
    )
    merge_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only show what the merge would do",
    )
    merge_parser.set_defaults(func=cmd_merge)

    # preview command
    preview_parser = subparsers.add_parser(
        "preview",
        help="Print the TTS preview URL for an entry",
    )
    preview_parser.add_argument("file", type=Path, help="Lexicon file")
    preview_parser.add_argument("grapheme", help="Grapheme of the entry")
    preview_parser.set_defaults(func=cmd_preview)

    return parser


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _print_parse_error(e: StructuralParseError) -> None:
    print(f"\n  [PARSE ERROR] {e}")
    if e.line:
        print(f"               Line: {e.line}")


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command."""
    config: EditorConfig = args.config
    print(f"\nValidating {args.file}...")

    try:
        parsed = decode_lexicon(
            args.file.name, _read(args.file),
            default_language=config.default_language,
        )
    except StructuralParseError as e:
        _print_parse_error(e)
        return EXIT_ERROR
    except FileNotFoundError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR

    print(f"  Language: {parsed.language}")
    print(f"  Entries: {len(parsed.entries)}")

    issues = validate_entries(parsed.entries)
    for index, errors in sorted(issues.items()):
        graphemes = ", ".join(parsed.entries[index].graphemes) or f"Entry {index + 1}"
        for error in errors:
            print(f"  [ERROR] {graphemes}: {error}")

    if issues:
        print(f"\nFound {len(issues)} invalid entr{'y' if len(issues) == 1 else 'ies'}")
        return EXIT_ERROR
    print("\nValidation passed!")
    return EXIT_OK


def cmd_convert(args: argparse.Namespace) -> int:
    """Handle convert command."""
    config: EditorConfig = args.config
    try:
        parsed = decode_lexicon(
            args.file.name, _read(args.file),
            default_language=args.language or config.default_language,
        )
    except StructuralParseError as e:
        _print_parse_error(e)
        return EXIT_ERROR
    except FileNotFoundError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR

    export = export_lexicon(
        parsed.entries, parsed.language, args.fmt, export_basename(args.file.name)
    )
    out_dir = args.output or args.file.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / export.filename
    # newline="" keeps CRLF row endings in CSV output
    with open(target, "w", encoding="utf-8", newline="") as f:
        f.write(export.content)
    print(f"Wrote {len(parsed.entries)} entries to {target}")
    return EXIT_OK


def cmd_merge(args: argparse.Namespace) -> int:
    """Handle merge command."""
    config: EditorConfig = args.config
    try:
        master = decode_lexicon(
            args.master.name, _read(args.master),
            default_language=config.default_language,
        )
        source = parse_merge_source(
            args.incoming.name, _read(args.incoming),
            default_language=master.language,
        )
    except StructuralParseError as e:
        _print_parse_error(e)
        return EXIT_ERROR
    except FileNotFoundError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR

    try:
        check_merge_source(master.language, source)
    except LanguageMismatchError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR
    except ConflictBlockingError as e:
        print(f"\n  [BLOCKED] {e}")
        for issue in source.issues:
            line = f" (line {issue.line_number})" if issue.line_number else ""
            print(f"    {issue.message}{line}")
        return EXIT_ERROR

    preview = preview_merge(master.entries, source.entries)
    print("\nMerge preview:")
    print(f"  New entries: {preview.new_entries}")
    print(f"  Conflicts: {preview.conflicts}")
    print(f"  Identical (skipped): {preview.identical_skipped}")
    for note in preview.potential_issues:
        print(f"    {note}")
    if args.dry_run:
        return EXIT_OK

    plan = analyze_merge(master.entries, source.entries)
    if args.resolve:
        plan.resolve_all(args.resolve)
    if args.resolve_aliases:
        plan.resolve_all(args.resolve_aliases, ConflictType.ADDITIONAL_ALIAS)
    if args.resolve_conflicts:
        plan.resolve_all(args.resolve_conflicts, ConflictType.CONFLICT)
    if not plan.is_fully_resolved:
        print(
            f"\n{len(plan.unresolved)} conflict(s) unresolved; "
            "use --resolve, --resolve-aliases or --resolve-conflicts"
        )
        return EXIT_UNRESOLVED

    result = finalize_merge(plan)
    export = export_lexicon(
        result.entries, master.language, LexiconFormat.XML, "merged"
    )
    target = args.output or args.master.with_suffix(".xml")
    target.write_text(export.content, encoding="utf-8")
    summary = result.summary
    print(
        f"\nMerge completed: {summary.new_entries} new entries, "
        f"{summary.conflicts_resolved} conflicts resolved, "
        f"{summary.identical_skipped} identical entries skipped"
    )
    print(f"Wrote {len(result.entries)} entries to {target}")
    return EXIT_OK


def cmd_preview(args: argparse.Namespace) -> int:
    """Handle preview command."""
    config: EditorConfig = args.config
    try:
        parsed = decode_lexicon(
            args.file.name, _read(args.file),
            default_language=config.default_language,
        )
    except StructuralParseError as e:
        _print_parse_error(e)
        return EXIT_ERROR
    except FileNotFoundError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR

    wanted = args.grapheme.lower()
    entry = next(
        (e for e in parsed.entries if wanted in (g.lower() for g in e.graphemes)),
        None,
    )
    if entry is None:
        print(f"\n  [ERROR] No entry with grapheme {args.grapheme!r}")
        return EXIT_ERROR
    try:
        url = build_preview_url(
            config.preview_base_url, parsed.language, entry,
            export_basename(args.file.name) + ".xml",
        )
    except PreviewError as e:
        print(f"\n  [ERROR] {e}")
        return EXIT_ERROR
    print(url)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
