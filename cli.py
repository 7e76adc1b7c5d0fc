# SetupDiff v0.4.0
#!/usr/bin/env python3
"""
SetupDiff CLI

Command-line interface for comparing and browsing setup exports.
"""
import argparse
import json
import logging
import sys


def configure_logging(verbose: bool = False):
    from config import settings

    logging.basicConfig(
        level=logging.INFO if (verbose or settings.DEBUG) else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def compare_files(paths: list[str], changed_only: bool = False, as_json: bool = False,
                  against_first: bool = None) -> int:
    """Compare setup exports and print the differences. Returns an exit code."""
    from core import compare_setups, format_report, InsufficientDocuments
    from config import settings

    if against_first is None:
        against_first = settings.COMPARE_AGAINST_FIRST

    try:
        result = compare_setups(
            paths,
            epsilon=settings.NUMERIC_EPSILON,
            against_first=against_first,
            **settings.parse_options()
        )
    except InsufficientDocuments as e:
        print(f"Error: {e}", file=sys.stderr)
        for source, error in e.failures:
            print(f"  {source}: {error.message}", file=sys.stderr)
        return 2

    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(format_report(result, changed_only=changed_only))

    return 0 if result.is_identical else 1


def list_setups(root: str, prefixes: list[str], index_by: str = None) -> int:
    """List the setups under ROOT, optionally below a vehicle/track prefix."""
    from services.watcher import IndexService

    service = IndexService(index_by=index_by)
    try:
        service.start(root, watch=False)
    except FileNotFoundError:
        print(f"Error: Directory not found: {root}", file=sys.stderr)
        return 2

    segments = [part for prefix in prefixes for part in prefix.split("/") if part.strip()]
    entries = service.list_setups(tuple(segments))

    if not entries:
        print("No setups found.")
        return 0

    print(f"\nSetups ({len(entries)}):")
    print("-" * 60)

    current = None
    for entry in entries:
        group = entry.segments[:-1]
        if group != current:
            print(f"  {' / '.join(group) or '(top level)'}")
            current = group
        print(f"    {entry.name}")
        print(f"      {entry.location}")

    return 0


def run_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run the FastAPI server."""
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


def watch_directory(path: str):
    """Watch a directory and print index updates as they happen."""
    from services.watcher import IndexService, IndexUpdate
    import time

    def on_updates(updates: list[IndexUpdate]):
        for update in updates:
            print(f"[{update.kind}] {' / '.join(update.segments)}")
            print(f"   {update.location}")

    service = IndexService()
    service.subscribe(on_updates)

    try:
        service.start(path)
    except FileNotFoundError:
        print(f"Error: Directory not found: {path}", file=sys.stderr)
        return

    print(f"Watching directory: {path} ({len(service.index)} setups indexed)")
    print("Press Ctrl+C to stop\n")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
        service.stop()


def main(argv: list[str] = None) -> int:
    parser = argparse.ArgumentParser(
        description="SetupDiff CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # compare
    compare_parser = subparsers.add_parser("compare", help="Compare two or more setup exports")
    compare_parser.add_argument("files", nargs="+", help="Setup exports, in column order")
    compare_parser.add_argument("--changed", action="store_true", help="Only show differing parameters")
    compare_parser.add_argument("--json", action="store_true", help="Print the comparison as JSON")
    compare_parser.add_argument("--against-first", action="store_true", default=None,
                                help="Classify every column against the first")

    # list
    list_parser = subparsers.add_parser("list", help="List setups in natural order")
    list_parser.add_argument("prefix", nargs="*", help="Vehicle / track prefix, e.g. 'Car1/Track1'")
    list_parser.add_argument("--root", help="Setups directory (default: SETUPS_DIRECTORY)")
    list_parser.add_argument("--by", choices=["document", "path"],
                             help="Key setups by export contents or by directory layout (default: INDEX_BY)")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    # watch
    watch_parser = subparsers.add_parser("watch", help="Watch a directory for setup changes")
    watch_parser.add_argument("path", help="Directory to watch")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(args.verbose)

    if args.command == "compare":
        if len(args.files) < 2:
            parser.error("compare needs at least two files")
        return compare_files(args.files, args.changed, args.json, args.against_first)
    elif args.command == "list":
        from config import settings

        root = args.root or settings.SETUPS_DIRECTORY
        if not root:
            parser.error("no setups directory: pass --root or set SETUPS_DIRECTORY")
        return list_setups(root, args.prefix, args.by)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    elif args.command == "watch":
        watch_directory(args.path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
