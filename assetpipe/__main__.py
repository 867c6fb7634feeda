"""CLI entry point for assetpipe.

Usage:
    python -m assetpipe [options] [command]

Example:
    python -m assetpipe build:styles
    python -m assetpipe --env production dist
    python -m assetpipe -C ~/src/dashboard serve
"""

import sys

from .cli import main

if __name__ == '__main__':
    sys.exit(main())
