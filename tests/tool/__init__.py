"""Test helpers for kustomize-values tools."""

from kustomize_values.tool.kustomize_values import main


def run_main(args: list[str]) -> int:
    """Run the command line tool, returning the exit code."""
    try:
        main(args)
    except SystemExit as err:
        return int(err.code or 0)
    return 0
