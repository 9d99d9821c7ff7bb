"""
Command-line interface for snapshot files.

This module provides commands to inspect, diff and sort snapshot store
files outside of a test run.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import styles
from .clean import is_naturally_sorted, natural_key
from .config import ConfigManager
from .diff import build_report, render
from .storage import SnapshotStore

logger = logging.getLogger(__name__)


class SnapshotCLI:
    """Command-line interface for snapshot files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_manager = ConfigManager(config_path)
        self.config = self.config_manager.get_config()
        self.store = SnapshotStore()
        self.verbose = False

    def run(self, args: Optional[list[str]] = None) -> int:
        """Run the CLI with given arguments."""
        parser = self._create_parser()
        parsed_args = parser.parse_args(args)

        if parsed_args.config:
            self.config_manager = ConfigManager(parsed_args.config)
            self.config = self.config_manager.get_config()
        if parsed_args.no_color:
            self.config.color = False
        self.verbose = parsed_args.verbose
        if parsed_args.verbose:
            logging.getLogger("textsnap").setLevel(logging.DEBUG)
        elif parsed_args.quiet:
            logging.getLogger("textsnap").setLevel(logging.WARNING)

        if not hasattr(parsed_args, "func"):
            parser.print_help()
            return 1

        try:
            return parsed_args.func(parsed_args)
        except KeyboardInterrupt:
            logger.info("\nInterrupted by user")
            return 1
        except Exception as e:
            logger.error(f"Error: {e}")
            if self.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="textsnap",
            description="Inspect and maintain text snapshot files",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        parser.add_argument("--config", "-c", type=Path, help="Configuration file path")

        parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

        parser.add_argument("--quiet", "-q", action="store_true", help="Quiet output")

        parser.add_argument("--no-color", action="store_true", help="Disable colored output")

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # List command
        list_parser = subparsers.add_parser("list", help="List snapshots in a file")
        list_parser.add_argument("file", type=Path, help="Snapshot file")
        list_parser.set_defaults(func=self._list_command)

        # Show command
        show_parser = subparsers.add_parser("show", help="Print one snapshot")
        show_parser.add_argument("file", type=Path, help="Snapshot file")
        show_parser.add_argument("snap_id", help="Snapshot identifier, without brackets")
        show_parser.set_defaults(func=self._show_command)

        # Diff command
        diff_parser = subparsers.add_parser("diff", help="Diff two text files")
        diff_parser.add_argument("expected", type=Path, help="Expected text")
        diff_parser.add_argument("received", type=Path, help="Received text")
        diff_parser.add_argument(
            "--context", type=int, help="Lines of context around changes (negative shows everything)"
        )
        diff_parser.set_defaults(func=self._diff_command)

        # Sort command
        sort_parser = subparsers.add_parser("sort", help="Sort snapshot files by identifier")
        sort_parser.add_argument("paths", type=Path, nargs="+", help="Snapshot files or directories")
        sort_parser.add_argument(
            "--check", action="store_true", help="Only report unsorted files, exit 1 if any"
        )
        sort_parser.set_defaults(func=self._sort_command)

        # Config command
        config_parser = subparsers.add_parser("config", help="Configuration management")
        config_parser.add_argument(
            "--init", action="store_true", help="Initialize default configuration file"
        )
        config_parser.add_argument("--show", action="store_true", help="Show current configuration")
        config_parser.set_defaults(func=self._config_command)

        return parser

    def _output(self, text: str) -> None:
        if not self.config.color:
            text = styles.strip_styles(text)
        sys.stdout.write(text)

    def _list_command(self, args) -> int:
        """Handle the list command."""
        blocks = self.store.read_blocks(args.file)

        logger.info(f"Found {len(blocks)} snapshots in {args.file}:")
        for block in blocks:
            logger.info(f"  {block.line}: {block.header}")
            logger.debug(f"    {len(block.body.splitlines())} lines")

        return 0

    def _show_command(self, args) -> int:
        """Handle the show command."""
        body, line = self.store.lookup(args.file, args.snap_id)
        logger.debug(f"[{args.snap_id}] starts on line {line}")
        self._output(body if body.endswith("\n") else body + "\n")
        return 0

    def _diff_command(self, args) -> int:
        """Handle the diff command."""
        expected = args.expected.read_text(encoding="utf-8")
        received = args.received.read_text(encoding="utf-8")
        context = self.config.context if args.context is None else args.context

        result = render(expected, received, context)
        if result.empty:
            logger.info("No differences")
            return 0

        self._output(build_report(result))
        return 1

    def _sort_command(self, args) -> int:
        """Handle the sort command."""
        files: list[Path] = []
        for path in args.paths:
            if path.is_dir():
                files.extend(self.store.list_snapshot_files(path, self.config.suffix))
            else:
                files.append(path)

        unsorted = 0
        for file in files:
            blocks = self.store.read_blocks(file)
            if is_naturally_sorted([block.header for block in blocks]):
                continue

            unsorted += 1
            if args.check:
                logger.info(f"Unsorted: {file}")
                continue

            self.store.write_blocks(file, sorted(blocks, key=lambda block: natural_key(block.header)))
            logger.info(f"Sorted: {file}")

        if args.check:
            return 1 if unsorted else 0

        logger.info(f"Sorted {unsorted} of {len(files)} files")
        return 0

    def _config_command(self, args) -> int:
        """Handle the config command."""
        if args.init:
            self.config_manager.create_default_config()
            return 0

        if args.show:
            logger.info("Current configuration:")
            config_dict = self.config.to_dict()
            for key, value in config_dict.items():
                logger.info(f"  {key}: {value}")
            return 0

        logger.info("Use --init to create default config or --show to display current config")
        return 0


def main():
    """Main entry point for the CLI."""
    cli = SnapshotCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
