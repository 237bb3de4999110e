#!/usr/bin/env python3
"""Mod placement planner: Entry Point"""

import argparse
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from loader_registry import load_registry
from mod_loader import ConfigurationError, LoaderDescriptor, LoaderVariant, resolve
from placement_plan import PackageListing
from plan_executor import apply_plan


def setup_logging(log_dir: Path | None = None) -> tuple[logging.Logger, Path]:
    log_dir = log_dir or Path(os.environ.get("APPDATA", "~")).expanduser() / "ModPlacement"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "modplacement.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"))

    # Placement modules log under their own module names
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    return logging.getLogger("modplacement"), log_dir


def install_crash_handler(logger: logging.Logger):
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show where a mod package's files would be placed")
    parser.add_argument("package", help="Extracted package directory or .zip/.7z/.rar archive")
    parser.add_argument("package_id", help="Package identifier, e.g. BepInEx-BepInExPack")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--loader", choices=[v.value for v in LoaderVariant])
    source.add_argument("--game", help="Game slug to look up in --registry")
    parser.add_argument("--registry", help="Path to the game registry JSON")
    parser.add_argument(
        "--apply",
        metavar="TARGET_DIR",
        help="Copy the planned files into TARGET_DIR (package must be a directory)",
    )
    parser.add_argument("--log-dir")
    return parser.parse_args(argv)


def _descriptor_from_args(args: argparse.Namespace) -> LoaderDescriptor:
    if args.loader:
        return LoaderDescriptor(variant=LoaderVariant(args.loader))
    if not args.registry:
        raise ConfigurationError("--game requires --registry")
    descriptors = load_registry(Path(args.registry).read_bytes())
    if args.game not in descriptors:
        raise ConfigurationError(f"Game {args.game!r} not found in registry")
    return descriptors[args.game]


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logger, _ = setup_logging(Path(args.log_dir) if args.log_dir else None)
    install_crash_handler(logger)

    try:
        descriptor = _descriptor_from_args(args)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    package = Path(args.package)
    if package.is_dir():
        listing = PackageListing.from_directory(package)
    else:
        listing = PackageListing.from_archive(package)

    placer = resolve(descriptor, args.package_id)
    plan = placer.plan(listing)

    print(f"Loader: {descriptor.variant.value}")
    print(f"Placer: {type(placer).__name__}")
    print(f"Files: {len(plan.entries)}")
    for entry in plan.entries:
        flags = "tracked" if entry.tracked else "untracked"
        if entry.preserve_existing:
            flags += ", preserve"
        print(f"  {entry.source}  ->  {entry.destination}  ({flags})")
    for warning in plan.warnings:
        print(f"  WARNING: {warning.name}: {warning.reason}")

    if args.apply:
        if not package.is_dir():
            print("--apply needs an extracted package directory", file=sys.stderr)
            return 2
        result = apply_plan(plan, package, Path(args.apply))
        print(f"Wrote {len(result.written)} file(s), kept {len(result.preserved)} existing")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
