"""
Entry point for running fpm as a module.

Usage: python3 -m fpm install
"""

import sys

from .package_manager.cli import main

if __name__ == "__main__":
    sys.exit(main())
