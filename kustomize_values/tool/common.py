"""Common flags shared by the generator actions."""

import functools
import logging
import pathlib
from argparse import ArgumentParser
from typing import Any

from kustomize_values.config import (
    DEFAULT_APPS_DIR,
    DEFAULT_VALUES_DIR,
    GeneratorConfig,
)

_LOGGER = logging.getLogger(__name__)

# Type for command line flags of comma separated list
_CSV = functools.partial(str.split, sep=",")


def add_generator_flags(args: ArgumentParser) -> None:
    """Add flags that configure the ValuesGenerator."""
    args.add_argument(
        "--path",
        help="Root directory holding one subdirectory per service",
        type=pathlib.Path,
        default=DEFAULT_APPS_DIR,
    )
    args.add_argument(
        "--output-dir",
        help="Directory where values files are written",
        type=pathlib.Path,
        default=DEFAULT_VALUES_DIR,
    )
    args.add_argument(
        "--service",
        "-s",
        help="Only generate values for these services (repeatable)",
        action="append",
        default=None,
    )
    args.add_argument(
        "--exclude",
        help="Comma separated service directories to ignore, in addition "
        "to the defaults (repeatable)",
        type=_CSV,
        action="append",
        default=None,
    )
    args.add_argument(
        "--shared-config-map",
        help="ConfigMap whose env references are surfaced as extraEnv",
        default=None,
    )
    args.add_argument(
        "--ingress-class",
        help="Ingress class used when the base ingress does not set one",
        default=None,
    )


def build_config(
    path: pathlib.Path,
    output_dir: pathlib.Path,
    **kwargs: Any,
) -> GeneratorConfig:
    """Create the generator configuration from command line flags."""
    config = GeneratorConfig(apps_dir=path, values_dir=output_dir)
    if services := kwargs.get("service"):
        config.services = services
    for names in kwargs.get("exclude") or []:
        config.exclude_services.extend(name for name in names if name)
    if shared_config_map := kwargs.get("shared_config_map"):
        config.shared_config_map = shared_config_map
    if ingress_class := kwargs.get("ingress_class"):
        config.default_ingress_class = ingress_class
    _LOGGER.debug("Generator config: %s", config)
    return config
