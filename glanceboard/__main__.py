"""Command-line entry for glanceboard."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the glanceboard CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="glanceboard",
        description="Glance Board - time, weather and upcoming events for a single display",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m glanceboard                          # Start server on default port (3000)
  python -m glanceboard --port 8080              # Start server on port 8080
  python -m glanceboard --config board.yaml      # Load settings from a YAML file
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 3000, or from GLANCEBOARD_WEB_PORT / PORT)",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Optional YAML configuration file; environment variables take precedence",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the glanceboard CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        run_server(args)
    except ValueError as exc:
        print(f"glanceboard: configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0)


if __name__ == "__main__":
    main()
