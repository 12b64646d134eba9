"""Kustomize-values diff action.

Renders every values file in memory and compares it against the file currently
on disk, so a CI job can check the committed values are up to date.
"""

import difflib
import logging
import pathlib
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Generator, cast

import aiofiles
from aiofiles.ospath import isfile

from kustomize_values.exceptions import ValuesException
from kustomize_values.generator import Status, ValuesGenerator

from .common import add_generator_flags, build_config

_LOGGER = logging.getLogger(__name__)

_TRUNCATE = "[Diff truncated by kustomize-values]"


def perform_values_diff(
    path: pathlib.Path,
    old: str,
    new: str,
    n: int,
    limit_bytes: int = 0,
) -> Generator[str, None, None]:
    """Generate a unified diff between the existing and the rendered values."""
    diff_text = difflib.unified_diff(
        a=old.splitlines(keepends=True),
        b=new.splitlines(keepends=True),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        n=n,
    )
    size = 0
    for line in diff_text:
        size += len(line)
        if limit_bytes and size > limit_bytes:
            yield _TRUNCATE + "\n"
            break
        yield line if line.endswith("\n") else line + "\n"


async def _read_existing(path: pathlib.Path) -> str:
    if not await isfile(path):
        return ""
    async with aiofiles.open(str(path)) as values_file:
        return await values_file.read()


class DiffAction:
    """Show how generated values differ from the values files on disk."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "diff",
                help="Diff generated values against the values files on disk",
                description=(
                    "Render values files without writing them and print a "
                    "unified diff against the existing files."
                ),
            ),
        )
        add_generator_flags(args)
        args.add_argument(
            "--unified",
            "-u",
            type=int,
            default=3,
            help="output NUM (default 3) lines of unified context",
        )
        args.add_argument(
            "--limit-bytes",
            help="Maximum bytes for each diff output (0=unlimited)",
            type=int,
            default=0,
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        unified: int = 3,
        limit_bytes: int = 0,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        generator = ValuesGenerator(build_config(**kwargs))
        stale = []
        failed = []
        async for item in generator.render():
            if item.content is None:
                if item.result.status == Status.FAILED:
                    failed.append(item.result)
                continue
            path = item.result.path
            existing = await _read_existing(path)
            if existing == item.content:
                continue
            stale.append(path)
            for line in perform_values_diff(
                path, existing, item.content, unified, limit_bytes
            ):
                print(line, end="")

        if failed:
            raise ValuesException(f"Failed to render {len(failed)} values file(s)")
        if stale:
            raise ValuesException(f"{len(stale)} values file(s) are out of date")
        _LOGGER.info("Values files are up to date")
