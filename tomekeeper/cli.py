"""
tomekeeper command line — inspect, export and import a save directory.

Usage:
    tomekeeper check [--dry-run]            # migrate + validate + repair, report
    tomekeeper export [-o FILE]             # write an export envelope
    tomekeeper import FILE [--dry-run]      # replace the save with an export

--dry-run runs the full pipeline against an in-memory copy of the save, so
nothing in the data directory is touched.
"""

import sys
import json
import argparse
import logging

from tomekeeper.config import load_settings
from tomekeeper.tools import storage_keys as keys
from tomekeeper.tools.content import load_content
from tomekeeper.tools.migrator import SCHEMA_VERSION
from tomekeeper.tools.persistence import bootstrap, export_from_store, import_export
from tomekeeper.tools.storage import JsonFileStore, MemoryStore

logger = logging.getLogger("CLI")


def _snapshot(store: JsonFileStore) -> MemoryStore:
    return MemoryStore({key: store.get(key) for key in store.keys()})


def _open_store(data_dir: str, dry_run: bool):
    store = JsonFileStore(data_dir)
    return _snapshot(store) if dry_run else store


def cmd_check(args, settings, content) -> int:
    store = _open_store(settings.data_dir, args.dry_run)
    result = bootstrap(store, content)
    state = result.adapter.to_document()

    logger.info(f"Save directory: {settings.data_dir}")
    logger.info(f"Stored schema version: {result.from_version} (current {SCHEMA_VERSION})")
    logger.info(
        f"Quests: {len(state[keys.ACTIVE_ASSIGNMENTS])} active, "
        f"{len(state[keys.COMPLETED_QUESTS])} completed, "
        f"{len(state[keys.DISCARDED_QUESTS])} discarded"
    )
    logger.info(
        f"Items: {len(state[keys.INVENTORY_ITEMS])} in inventory, "
        f"{len(state[keys.EQUIPPED_ITEMS])} equipped"
    )
    logger.info(f"Books: {len(state[keys.BOOKS])}")
    for note in result.repairs.notes:
        logger.info(f"Repair: {note}")
    if args.dry_run:
        logger.info("--dry-run complete. Nothing was written.")
    return 0


def cmd_export(args, settings, content) -> int:
    store = _open_store(settings.data_dir, dry_run=True)
    result = bootstrap(store, content)
    envelope = export_from_store(store, result.adapter)
    text = json.dumps(envelope, indent=2, ensure_ascii=False)

    if args.output:
        try:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            logger.error(f"Could not write export to {args.output}: {e}")
            return 1
        logger.info(f"Exported schema v{SCHEMA_VERSION} save to {args.output}")
    else:
        sys.stdout.write(text + "\n")
    return 0


def cmd_import(args, settings, content) -> int:
    try:
        with open(args.file, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        logger.error(f"Could not read {args.file}: {e}")
        return 1

    store = _open_store(settings.data_dir, args.dry_run)
    document = import_export(raw, store, content)
    if document is None:
        return 1
    logger.info(f"Imported {args.file}: {len(document[keys.BOOKS])} book(s), "
                f"{len(document[keys.COMPLETED_QUESTS])} completed quest(s)")
    if args.dry_run:
        logger.info("--dry-run complete. The save directory was not modified.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tomekeeper", description="Tome of Secrets save tools")
    parser.add_argument("--data-dir", help="Save directory (overrides TOMEKEEPER_DATA_DIR)")
    parser.add_argument("--env-file", help="Path to a .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Migrate, validate and repair a save, then report")
    check.add_argument("--dry-run", action="store_true", help="Don't write migrated or repaired data back")
    check.set_defaults(func=cmd_check)

    export = sub.add_parser("export", help="Write an export envelope")
    export.add_argument("-o", "--output", help="Output file (default: stdout)")
    export.set_defaults(func=cmd_export)

    imp = sub.add_parser("import", help="Replace the save with an export file")
    imp.add_argument("file", help="Export JSON file")
    imp.add_argument("--dry-run", action="store_true", help="Validate only, don't write to the save directory")
    imp.set_defaults(func=cmd_import)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.env_file)
    if args.data_dir:
        settings.data_dir = args.data_dir

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    content = load_content(settings.content_path, settings.disabled_expansions)
    return args.func(args, settings, content)


if __name__ == "__main__":
    sys.exit(main())
