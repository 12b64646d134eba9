"""Kustomize-values generate action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from kustomize_values.exceptions import ValuesException
from kustomize_values.generator import ValuesGenerator

from .common import add_generator_flags, build_config
from .format import PrintFormatter

_LOGGER = logging.getLogger(__name__)


class GenerateAction:
    """Write Helm values files for every service."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "generate",
                aliases=["gen"],
                help="Generate Helm values files from Kustomize bases and overlays",
                description=(
                    "Write a base values file per service and a values file "
                    "per service environment overlay."
                ),
            ),
        )
        add_generator_flags(args)
        args.add_argument(
            "--summary",
            choices=["all", "failed", "none"],
            default="all",
            help="Which results to print after generating",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        summary: str = "all",
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        generator = ValuesGenerator(build_config(**kwargs))
        result = await generator.run()

        rows = []
        if summary == "all":
            rows = [item.as_row() for item in result.results]
        elif summary == "failed":
            rows = [item.as_row() for item in result.failed]
        PrintFormatter(["service", "environment", "status", "message"]).print(rows)

        if not result.ok:
            raise ValuesException(
                f"Failed to generate {len(result.failed)} values file(s)"
            )
