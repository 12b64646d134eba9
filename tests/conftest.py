"""Shared fixtures for kustomize-values tests."""

from pathlib import Path

import pytest

from kustomize_values.config import GeneratorConfig

TESTDATA = Path(__file__).parent / "testdata"
APPS_DIR = TESTDATA / "apps"


@pytest.fixture(name="values_dir")
def values_dir_fixture(tmp_path: Path) -> Path:
    """Output directory for generated values files."""
    return tmp_path / "helm" / "values" / "services"


@pytest.fixture(name="config")
def config_fixture(values_dir: Path) -> GeneratorConfig:
    """Generator configuration pointed at the test apps tree."""
    return GeneratorConfig(apps_dir=APPS_DIR, values_dir=values_dir)
