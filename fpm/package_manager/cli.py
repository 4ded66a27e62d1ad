"""
Command-line interface for the fpm package manager
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..errors import FpmError
from .package_manager import PackageManager

USAGE = """
Usage:

fpm install        install all the dependencies in your project
fpm add <foo>      add the <foo> dependency to your project
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fpm",
        description="A small npm-compatible package manager"
    )
    parser.add_argument("--config", type=Path, help="Path to a JSON config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add command
    add_parser = subparsers.add_parser("add", help="Add a dependency to the project")
    add_parser.add_argument("package", help="Package to add, as name[@range]")
    add_parser.add_argument("-D", "--save-dev", dest="dev", action="store_true",
                            help="Add to devDependencies")

    # install command
    subparsers.add_parser("install", help="Install all dependencies of the project")

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()

    # argparse reports unknown subcommands and bad options on stderr itself
    try:
        args = parser.parse_args(args)
    except SystemExit as e:
        return e.code or 0

    if args.command is None:
        print(f"expected 'add' or 'install' subcommand\n{USAGE}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr
    )

    try:
        pm = PackageManager(config_path=args.config)

        if args.command == "add":
            pm.add(args.package, dev=args.dev)
        elif args.command == "install":
            pm.install()

        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled", file=sys.stderr)
        return 130
    except (FpmError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
