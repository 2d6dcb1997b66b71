"""CLI interface for lost-and-found image search."""

import argparse
import json
import logging
import sys

from .catalog import open_catalog
from .engine import SearchEngine
from .errors import SearchError
from .index_builder import build_item_index
from .scoring import TOP_K


def _match(args: argparse.Namespace) -> int:
    engine = SearchEngine.from_locations(
        args.catalog,
        index_dir=args.index,
        vision_endpoint=args.remote,
        top_k=args.top_k,
    )
    result = engine.search(args.image)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def _build_index(args: argparse.Namespace) -> int:
    items = open_catalog(args.catalog).fetch_all_items()
    summary = build_item_index(items, args.output, image_root=args.image_root)
    print(json.dumps(summary, indent=2))
    return 0 if summary.get("success") else 1


def main(argv=None) -> None:
    """CLI entry point for lostfound-search."""
    parser = argparse.ArgumentParser(
        description="Find catalog items that look like an uploaded image",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log per-item score breakdowns")
    subparsers = parser.add_subparsers(dest="command", required=True)

    match = subparsers.add_parser("match", help="Rank catalog items for an image")
    match.add_argument("image", type=str, help="Image path, http(s) URL or data URL")
    match.add_argument("--catalog", required=True,
                       help="Catalog JSON file or URL")
    match.add_argument("--index", default=None,
                       help="Item index directory from build-index")
    match.add_argument("--remote", default=None,
                       help="Vision endpoint URL (uses local analysis if omitted)")
    match.add_argument("--top-k", type=int, default=TOP_K,
                       help="Number of results to return")
    match.set_defaults(func=_match)

    build = subparsers.add_parser("build-index",
                                  help="Precompute visual features for catalog images")
    build.add_argument("--catalog", required=True,
                       help="Catalog JSON file or URL")
    build.add_argument("--output", required=True,
                       help="Directory to write index files")
    build.add_argument("--image-root", default=None,
                       help="Base directory for relative item image paths")
    build.set_defaults(func=_build_index)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )

    try:
        code = args.func(args)
    except SearchError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 2

    sys.exit(code)


if __name__ == "__main__":
    main()
