"""Command line tool for generating Helm values files from Kustomize trees."""

import argparse
import asyncio
import logging
import sys
import traceback

from kustomize_values.exceptions import ValuesException
from . import diff, generate

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate Helm values files from Kustomize bases and overlays.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    generate.GenerateAction.register(subparsers)
    diff.DiffAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Kustomize-values command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT
    )

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except ValuesException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("kustomize-values error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
