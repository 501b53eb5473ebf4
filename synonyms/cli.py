import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

if __package__ in {None, ""}:
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
    __package__ = "synonyms"

from . import storage
from .boolean_query import BooleanQueryBuilder, SYNTAXES, get_syntax
from .errors import ConfigurationLoadError
from .expander import PhraseExpander, TermExpander
from .store import SynonymStore

DEFAULT_CATALOG = Path(__file__).resolve().parents[1] / "data" / "search_synonyms.json"


def _store(args: argparse.Namespace) -> SynonymStore:
    store = SynonymStore(args.catalog)
    store.initialize()
    return store


def _finish_mutation(store: SynonymStore, args: argparse.Namespace) -> None:
    if args.save:
        path = store.save(args.catalog)
        print(f"Saved to {path}")
    else:
        print("Warning: change applied in memory only; use --save to persist")


def list_entries(args: argparse.Namespace) -> None:
    """Print all main terms with their synonyms."""

    catalog = _store(args).snapshot()
    if args.term:
        term = args.term.strip().lower()
        if term not in catalog:
            raise SystemExit(f"unknown main term: {term}")
        print(f"{term}: {', '.join(catalog.synonyms_of(term))}")
        return
    if not len(catalog):
        print("No synonyms configured")
        return
    for base, entry in catalog.entries.items():
        print(f"{base}: {', '.join(entry.synonyms)}")


def add(args: argparse.Namespace) -> None:
    """Merge synonyms into a main term."""

    store = _store(args)
    store.add(args.main_term, args.synonyms)
    term = args.main_term.strip().lower()
    if term not in store.snapshot():
        raise SystemExit("no valid synonyms given")
    print(f"{term}: {', '.join(store.snapshot().synonyms_of(term))}")
    _finish_mutation(store, args)


def remove(args: argparse.Namespace) -> None:
    """Remove a main term or some of its synonyms."""

    store = _store(args)
    term = args.main_term.strip().lower()
    if term not in store.snapshot():
        raise SystemExit(f"unknown main term: {term}")
    store.remove(term, args.synonyms or None)
    if term in store.snapshot():
        print(f"{term}: {', '.join(store.snapshot().synonyms_of(term))}")
    else:
        print(f"{term}: removed")
    _finish_mutation(store, args)


def test(args: argparse.Namespace) -> None:
    """Show the expansion and the boolean query for a phrase."""

    store = _store(args)
    expander = TermExpander(store)
    builder = BooleanQueryBuilder(expander, get_syntax(args.syntax))
    phrase = " ".join(args.phrase)
    print(f"Original: {phrase}")
    for word in phrase.split():
        print(f"  {word} -> {', '.join(expander.expand_term(word))}")
    print(f"Expanded: {PhraseExpander(expander).expand_phrase(phrase)}")
    print(f"Boolean query ({args.syntax}): {builder.build_boolean_query(phrase)}")


def validate(args: argparse.Namespace) -> None:
    """Validate synonym data from a JSON file."""

    path = args.input or args.catalog
    try:
        data = storage.read_synonym_source(path)
    except ConfigurationLoadError as e:
        raise SystemExit(f"invalid catalog: {e}")
    try:
        storage.validate_catalog(storage.build_raw_catalog(data))
    except ValueError as e:
        raise SystemExit(f"invalid catalog: {e}")

    print(f"Catalog '{path}' OK")


def stats(args: argparse.Namespace) -> None:
    """Show statistics about synonyms."""

    catalog = _store(args).snapshot()
    total_entries = len(catalog)
    total_synonyms = sum(len(e.synonyms) for e in catalog.entries.values())
    shared = sum(1 for bases in catalog.index.values() if len(bases) > 1)

    print(f"Entries: {total_entries}")
    print(f"Synonyms: {total_synonyms}")
    print(f"Synonyms listed under several main terms: {shared}")


def export(args: argparse.Namespace) -> None:
    """Export synonym data as JSON or as plain text lines."""

    catalog = _store(args).snapshot()
    if args.format == "json":
        text = json.dumps(catalog.as_dict(), ensure_ascii=False, indent=2)
    else:
        text = "\n".join(
            f"{base}: {', '.join(entry.synonyms)}" for base, entry in catalog.entries.items()
        )

    path = args.output or Path("-")
    if path == Path("-"):
        print(text)
    else:
        Path(path).write_text(text, encoding="utf-8")


def diff(args: argparse.Namespace) -> None:
    """Compare two catalogues and list changed main terms."""

    statuses = storage.compare_catalogues(
        storage.load_synonyms(args.old), storage.load_synonyms(args.new)
    )
    for term in sorted(statuses):
        if statuses[term] != "unchanged" or args.all:
            print(f"{statuses[term]:>9}  {term}")


def main(argv: List[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Search synonym utility")
    parser.add_argument(
        "--catalog",
        type=Path,
        default=DEFAULT_CATALOG,
        help="synonym catalogue (JSON)",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="write add/remove changes back to the catalogue",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="increase verbosity")
    parser.add_argument("--log-file", type=Path, default=None, help="write logs to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="list synonym groups")
    p.add_argument("--term", default=None, help="show only this main term")
    p.set_defaults(func=list_entries)

    p = sub.add_parser("add", help="add synonyms to a main term")
    p.add_argument("main_term")
    p.add_argument("synonyms", nargs="+")
    p.set_defaults(func=add)

    p = sub.add_parser("remove", help="remove a main term or some synonyms")
    p.add_argument("main_term")
    p.add_argument("synonyms", nargs="*", help="omit to remove the whole group")
    p.set_defaults(func=remove)

    p = sub.add_parser("test", help="show expansion and boolean query")
    p.add_argument("phrase", nargs="+")
    p.add_argument("--syntax", choices=sorted(SYNTAXES), default="mysql")
    p.set_defaults(func=test)

    p = sub.add_parser("validate", help="validate synonym data")
    p.add_argument("input", type=Path, nargs="?", default=None)
    p.set_defaults(func=validate)

    p = sub.add_parser("stats", help="show statistics")
    p.set_defaults(func=stats)

    p = sub.add_parser("export", help="export synonym data")
    p.add_argument(
        "--output",
        type=Path,
        default=None,
        help="output file (defaults to stdout)",
    )
    p.add_argument("--format", choices=["json", "text"], default="json")
    p.set_defaults(func=export)

    p = sub.add_parser("diff", help="compare two catalogues")
    p.add_argument("old", type=Path)
    p.add_argument("new", type=Path)
    p.add_argument("--all", action="store_true", help="also list unchanged terms")
    p.set_defaults(func=diff)

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if args.log_file:
        handlers.append(logging.FileHandler(args.log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", handlers=handlers)

    args.func(args)


if __name__ == "__main__":
    main()
