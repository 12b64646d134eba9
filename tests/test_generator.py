"""Tests for the values generator."""

from pathlib import Path

import pytest
import yaml

from kustomize_values.config import GeneratorConfig
from kustomize_values.exceptions import InputException, OutputException
from kustomize_values.generator import Status, ValuesGenerator

APPS_DIR = Path(__file__).parent / "testdata" / "apps"


def _results(summary) -> dict[str, Status]:  # type: ignore[no-untyped-def]
    return {result.label: result.status for result in summary.results}


def test_discover_services(config: GeneratorConfig) -> None:
    """Test services are discovered in name order, excluding shared-infra."""
    services = ValuesGenerator(config).discover_services()
    assert [svc.name for svc in services] == ["api", "broken", "orphan", "worker"]
    api = services[0]
    assert [p.name for p in api.overlays()] == ["dev", "prod", "qa"]
    assert services[2].overlays() == []


def test_discover_selected_services(config: GeneratorConfig) -> None:
    """Test limiting the run to some services."""
    config.services = ["worker", "shared-infra"]
    services = ValuesGenerator(config).discover_services()
    assert [svc.name for svc in services] == ["worker"]


def test_discover_missing_apps_dir(tmp_path: Path) -> None:
    """Test a missing apps root is fatal."""
    generator = ValuesGenerator(
        GeneratorConfig(apps_dir=tmp_path / "missing", values_dir=tmp_path / "out")
    )
    with pytest.raises(InputException, match="does not exist"):
        generator.discover_services()


async def test_run(config: GeneratorConfig, values_dir: Path) -> None:
    """Test a full run writes a file for every valid service and overlay."""
    summary = await ValuesGenerator(config).run()
    assert _results(summary) == {
        "api": Status.GENERATED,
        "api/dev": Status.GENERATED,
        "api/prod": Status.GENERATED,
        "api/qa": Status.SKIPPED,
        "broken": Status.FAILED,
        "orphan": Status.SKIPPED,
        "worker": Status.GENERATED,
        "worker/staging": Status.GENERATED,
    }
    assert not summary.ok
    assert [result.label for result in summary.failed] == ["broken"]
    assert "failed to parse as yaml" in (summary.failed[0].message or "")
    assert sorted(p.name for p in values_dir.iterdir()) == [
        "api-dev.yaml",
        "api-prod.yaml",
        "api.yaml",
        "worker-staging.yaml",
        "worker.yaml",
    ]
    for path in values_dir.iterdir():
        assert isinstance(yaml.safe_load(path.read_text()), dict)


async def test_skipped_service_has_no_output(
    config: GeneratorConfig, values_dir: Path
) -> None:
    """Test a service missing base/service.yaml produces nothing."""
    summary = await ValuesGenerator(config).run()
    orphan = [result for result in summary.skipped if result.service == "orphan"]
    assert len(orphan) == 1
    assert orphan[0].message == "missing deployment/service in base"
    assert not list(values_dir.glob("orphan*"))
    # Overlays of a failed service are not processed
    assert not list(values_dir.glob("broken*"))


async def test_idempotent(config: GeneratorConfig, values_dir: Path) -> None:
    """Test running twice produces byte identical output."""
    generator = ValuesGenerator(config)
    await generator.run()
    first = {p.name: p.read_bytes() for p in values_dir.iterdir()}
    await generator.run()
    second = {p.name: p.read_bytes() for p in values_dir.iterdir()}
    assert first == second


async def test_overwrites_output(config: GeneratorConfig, values_dir: Path) -> None:
    """Test existing values files are replaced, not merged."""
    values_dir.mkdir(parents=True)
    (values_dir / "worker.yaml").write_text("stale: true\n")
    await ValuesGenerator(config).run()
    doc = yaml.safe_load((values_dir / "worker.yaml").read_text())
    assert "stale" not in doc
    assert doc["service"]["name"] == "worker"


async def test_secret_name_default(config: GeneratorConfig, values_dir: Path) -> None:
    """Test the secret name with and without a base secret manifest."""
    await ValuesGenerator(config).run()
    api = yaml.safe_load((values_dir / "api.yaml").read_text())
    worker = yaml.safe_load((values_dir / "worker.yaml").read_text())
    assert api["secret"]["name"] == "api-credentials"
    assert worker["secret"]["name"] == "worker-secrets"


async def test_render_does_not_write(config: GeneratorConfig, values_dir: Path) -> None:
    """Test rendering keeps everything in memory."""
    items = [item async for item in ValuesGenerator(config).render()]
    assert len(items) == 8
    assert not values_dir.exists()
    generated = [item for item in items if item.result.status == Status.GENERATED]
    assert all(item.content for item in generated)
    assert all(
        item.content is None
        for item in items
        if item.result.status != Status.GENERATED
    )


async def test_malformed_overlay(tmp_path: Path) -> None:
    """Test a malformed overlay fails only that environment."""
    apps = tmp_path / "apps"
    base = apps / "web/base"
    base.mkdir(parents=True)
    (base / "deployment.yaml").write_text(
        (APPS_DIR / "worker/base/deployment.yaml").read_text()
    )
    (base / "service.yaml").write_text(
        (APPS_DIR / "worker/base/service.yaml").read_text()
    )
    for env, content in (
        ("dev", "images: {not: [valid\n"),
        ("prod", "commonLabels:\n  version: v1\n"),
    ):
        (apps / "web/overlays" / env).mkdir(parents=True)
        (apps / "web/overlays" / env / "kustomization.yaml").write_text(content)

    values_dir = tmp_path / "out"
    summary = await ValuesGenerator(
        GeneratorConfig(apps_dir=apps, values_dir=values_dir)
    ).run()
    assert _results(summary) == {
        "web": Status.GENERATED,
        "web/dev": Status.FAILED,
        "web/prod": Status.GENERATED,
    }
    assert sorted(p.name for p in values_dir.iterdir()) == [
        "web-prod.yaml",
        "web.yaml",
    ]


async def test_output_not_writable(config: GeneratorConfig, tmp_path: Path) -> None:
    """Test a values path that can't be a directory is fatal."""
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    config.values_dir = blocker / "values"
    with pytest.raises(OutputException):
        await ValuesGenerator(config).run()


async def test_run_missing_apps_dir(tmp_path: Path) -> None:
    """Test nothing is created when the apps root is missing."""
    values_dir = tmp_path / "out"
    generator = ValuesGenerator(
        GeneratorConfig(apps_dir=tmp_path / "missing", values_dir=values_dir)
    )
    with pytest.raises(InputException):
        await generator.run()
    assert not values_dir.exists()


def _write_base(base: Path, deployment: bytes | None = None) -> None:
    base.mkdir(parents=True)
    (base / "deployment.yaml").write_bytes(
        deployment or (APPS_DIR / "worker/base/deployment.yaml").read_bytes()
    )
    (base / "service.yaml").write_bytes(
        (APPS_DIR / "worker/base/service.yaml").read_bytes()
    )


async def test_unreadable_input_fails_unit(tmp_path: Path) -> None:
    """Test a manifest that is not utf-8 fails only its service."""
    apps = tmp_path / "apps"
    _write_base(apps / "a-bad/base", deployment=b"kind: Deployment\n\xff\xfe\n")
    _write_base(apps / "b-good/base")

    values_dir = tmp_path / "out"
    summary = await ValuesGenerator(
        GeneratorConfig(apps_dir=apps, values_dir=values_dir)
    ).run()
    assert _results(summary) == {
        "a-bad": Status.FAILED,
        "b-good": Status.GENERATED,
    }
    assert "not valid utf-8" in (summary.failed[0].message or "")
    assert sorted(p.name for p in values_dir.iterdir()) == ["b-good.yaml"]


async def test_unquoted_overlay_tag(tmp_path: Path) -> None:
    """Test an unquoted numeric tag is written as written in the overlay."""
    apps = tmp_path / "apps"
    _write_base(apps / "web/base")
    overlay = apps / "web/overlays/dev"
    overlay.mkdir(parents=True)
    (overlay / "kustomization.yaml").write_text(
        "images:\n"
        "- name: registry.local:5000/jobs/worker\n"
        "  newTag: 1.10\n"
        "commonLabels:\n"
        "  version: 20240101\n"
    )

    values_dir = tmp_path / "out"
    summary = await ValuesGenerator(
        GeneratorConfig(apps_dir=apps, values_dir=values_dir)
    ).run()
    assert summary.ok
    doc = yaml.safe_load((values_dir / "web-dev.yaml").read_text())
    assert doc["image"] == {"tag": "1.10"}
    assert doc["service"] == {"labels": {"version": "20240101"}}
