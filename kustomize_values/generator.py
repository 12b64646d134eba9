"""Library for generating Helm values files from a tree of Kustomize services.

The apps root holds one directory per service, each with a `base/` tree and
optional `overlays/<env>/` trees:

```
apps/
  my-service/
    base/deployment.yaml
    base/service.yaml
    base/ingress.yaml               (optional)
    base/secret.yaml                (optional)
    base/scaledobject-keda.yaml     (optional)
    overlays/dev/kustomization.yaml
    overlays/dev/ingress-patch.yaml            (optional)
    overlays/dev/external-secret-patch.yaml    (optional)
```

Each service produces `<values-dir>/<service>.yaml` and each overlay produces
`<values-dir>/<service>-<env>.yaml`.

```python
from kustomize_values.config import GeneratorConfig
from kustomize_values.generator import ValuesGenerator

summary = await ValuesGenerator(GeneratorConfig(apps_dir=Path("apps"))).run()
for result in summary.failed:
    print(f"Failed {result.label}: {result.message}")
```

A missing required file skips the unit and malformed input fails only that
unit. Problems with the apps root or the values directory abort the run.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from enum import Enum
import logging
from pathlib import Path
from typing import Any, TypeVar

import aiofiles
import aiofiles.os
from aiofiles.ospath import isdir, isfile

from .config import GeneratorConfig
from .context import trace_context, unit_label
from .exceptions import (
    InputException,
    MalformedInputException,
    MissingInputException,
    OutputException,
)
from .manifest import (
    Deployment,
    ExternalSecret,
    Ingress,
    Kustomization,
    ScaledObject,
    Secret,
    Service,
    StringScalarLoader,
    read_document,
    read_documents,
)
from .values import build_base_values, build_env_values, render_values, split_image

__all__ = [
    "ValuesGenerator",
    "ServiceDescriptor",
    "RunSummary",
    "ItemResult",
    "Status",
]

_LOGGER = logging.getLogger(__name__)

BASE_DIR = "base"
OVERLAYS_DIR = "overlays"
DEPLOYMENT_FILE = "deployment.yaml"
SERVICE_FILE = "service.yaml"
INGRESS_FILE = "ingress.yaml"
SECRET_FILE = "secret.yaml"
SCALED_OBJECT_FILE = "scaledobject-keda.yaml"
KUSTOMIZATION_FILE = "kustomization.yaml"
INGRESS_PATCH_FILE = "ingress-patch.yaml"
EXTERNAL_SECRET_PATCH_FILE = "external-secret-patch.yaml"

_T = TypeVar("_T", Ingress, Secret, ScaledObject)


class Status(str, Enum):
    """Outcome of generating a single values file."""

    GENERATED = "generated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ItemResult:
    """The result of a single unit of work, a service base or an environment."""

    service: str
    environment: str | None
    status: Status
    path: Path
    """The values file for this unit, whether or not it was written."""

    message: str | None = None

    @property
    def label(self) -> str:
        """Identifier for the unit of work, e.g. `service/env`."""
        return unit_label(self.service, self.environment)

    def as_row(self) -> dict[str, Any]:
        """Return the result as a row for printing."""
        return {
            "service": self.service,
            "environment": self.environment or "-",
            "status": self.status.value,
            "path": str(self.path),
            "message": self.message or "",
        }


@dataclass
class RunSummary:
    """Results of every unit of work in a generator run."""

    results: list[ItemResult] = field(default_factory=list)

    def _with_status(self, status: Status) -> list[ItemResult]:
        return [result for result in self.results if result.status == status]

    @property
    def generated(self) -> list[ItemResult]:
        return self._with_status(Status.GENERATED)

    @property
    def skipped(self) -> list[ItemResult]:
        return self._with_status(Status.SKIPPED)

    @property
    def failed(self) -> list[ItemResult]:
        return self._with_status(Status.FAILED)

    @property
    def ok(self) -> bool:
        """True when no unit of work failed."""
        return not self.failed


@dataclass
class RenderedValues:
    """A unit of work along with the rendered values when it succeeded."""

    result: ItemResult
    content: str | None = None


@dataclass(frozen=True)
class ServiceDescriptor:
    """A service directory under the apps root."""

    name: str
    path: Path

    @property
    def base_dir(self) -> Path:
        return self.path / BASE_DIR

    @property
    def overlays_dir(self) -> Path:
        return self.path / OVERLAYS_DIR

    def overlays(self) -> list[Path]:
        """Return the environment overlay directories in name order."""
        if not self.overlays_dir.is_dir():
            return []
        return sorted(p for p in self.overlays_dir.iterdir() if p.is_dir())


async def _read_optional(path: Path, cls: type[_T]) -> _T | None:
    """Parse an optional single document manifest, or None if absent."""
    if not await isfile(path):
        return None
    return cls.parse_doc(await read_document(path), str(path))


class ValuesGenerator:
    """Generates Helm values files for every service in the apps root."""

    def __init__(self, config: GeneratorConfig) -> None:
        """Initialize ValuesGenerator."""
        self._config = config

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    def base_values_path(self, service: str) -> Path:
        """Path of the base values file for the service."""
        return self._config.values_dir / f"{service}.yaml"

    def env_values_path(self, service: str, environment: str) -> Path:
        """Path of the environment values file for the service."""
        return self._config.values_dir / f"{service}-{environment}.yaml"

    def discover_services(self) -> list[ServiceDescriptor]:
        """Return the services under the apps root in name order.

        Directories without a `base` directory are not services.
        """
        apps_dir = self._config.apps_dir
        if not apps_dir.is_dir():
            raise InputException(f"Apps directory does not exist: {apps_dir}")
        try:
            entries = sorted(apps_dir.iterdir())
        except OSError as err:
            raise InputException(f"Unable to read apps directory {apps_dir}: {err}")
        services = []
        for entry in entries:
            if not entry.is_dir() or not self._config.is_selected(entry.name):
                continue
            if not (entry / BASE_DIR).is_dir():
                _LOGGER.debug("Ignoring %s (no %s directory)", entry, BASE_DIR)
                continue
            services.append(ServiceDescriptor(name=entry.name, path=entry))
        return services

    async def _render_base(self, svc: ServiceDescriptor) -> tuple[str, str]:
        """Render the base values document, returning it and the image repository."""
        base = svc.base_dir
        deployment_path = base / DEPLOYMENT_FILE
        service_path = base / SERVICE_FILE
        if not await isfile(deployment_path) or not await isfile(service_path):
            raise MissingInputException("missing deployment/service in base")
        deployment = Deployment.parse_doc(
            await read_document(deployment_path), str(deployment_path)
        )
        service = Service.parse_doc(await read_document(service_path), str(service_path))
        values = build_base_values(
            svc.name,
            deployment,
            service,
            self._config,
            ingress=await _read_optional(base / INGRESS_FILE, Ingress),
            secret=await _read_optional(base / SECRET_FILE, Secret),
            scaled_object=await _read_optional(base / SCALED_OBJECT_FILE, ScaledObject),
        )
        repository, _ = split_image(deployment.container.image)
        return render_values(values), repository

    async def _render_env(self, env_dir: Path, repository: str | None) -> str:
        """Render the values document for a single overlay directory."""
        kustomization_path = env_dir / KUSTOMIZATION_FILE
        if not await isfile(kustomization_path):
            raise MissingInputException(f"no {KUSTOMIZATION_FILE}")
        kustomization = Kustomization.parse_doc(
            await read_document(kustomization_path, StringScalarLoader),
            str(kustomization_path),
        )
        external_secrets: list[ExternalSecret] | None = None
        patch_path = env_dir / EXTERNAL_SECRET_PATCH_FILE
        if await isfile(patch_path):
            external_secrets = [
                ExternalSecret.parse_doc(doc, str(patch_path))
                for doc in await read_documents(patch_path)
            ]
        values = build_env_values(
            kustomization,
            repository=repository,
            ingress_patch=await _read_optional(env_dir / INGRESS_PATCH_FILE, Ingress),
            external_secrets=external_secrets,
            path=str(kustomization_path),
        )
        return render_values(values)

    async def render(self) -> AsyncGenerator[RenderedValues, None]:
        """Render every values document without writing anything.

        Yields one item per service base and per environment overlay in
        processing order.
        """
        for svc in self.discover_services():
            _LOGGER.info("Generating base values for %s", svc.name)
            path = self.base_values_path(svc.name)
            repository: str | None = None
            with trace_context(svc.name):
                try:
                    content, repository = await self._render_base(svc)
                except MissingInputException as err:
                    _LOGGER.info("  Skipping %s (%s)", svc.name, err)
                    item = RenderedValues(
                        ItemResult(svc.name, None, Status.SKIPPED, path, str(err))
                    )
                except MalformedInputException as err:
                    _LOGGER.error("  Failed to generate %s: %s", svc.name, err)
                    item = RenderedValues(
                        ItemResult(svc.name, None, Status.FAILED, path, str(err))
                    )
                else:
                    item = RenderedValues(
                        ItemResult(svc.name, None, Status.GENERATED, path), content
                    )
            yield item
            if item.result.status != Status.GENERATED:
                continue

            for env_dir in svc.overlays():
                env = env_dir.name
                path = self.env_values_path(svc.name, env)
                with trace_context(svc.name), trace_context(env):
                    try:
                        content = await self._render_env(env_dir, repository)
                    except MissingInputException as err:
                        _LOGGER.info(
                            "  Skipping env %s for %s (%s)", env, svc.name, err
                        )
                        item = RenderedValues(
                            ItemResult(svc.name, env, Status.SKIPPED, path, str(err))
                        )
                    except MalformedInputException as err:
                        _LOGGER.error(
                            "  Failed to generate env %s for %s: %s", env, svc.name, err
                        )
                        item = RenderedValues(
                            ItemResult(svc.name, env, Status.FAILED, path, str(err))
                        )
                    else:
                        _LOGGER.info("  Generating env %s for %s", env, svc.name)
                        item = RenderedValues(
                            ItemResult(svc.name, env, Status.GENERATED, path), content
                        )
                yield item

    async def _prepare_output(self) -> None:
        values_dir = self._config.values_dir
        try:
            await aiofiles.os.makedirs(values_dir, exist_ok=True)
        except OSError as err:
            raise OutputException(
                f"Unable to create values directory {values_dir}: {err}"
            )
        if not await isdir(values_dir):
            raise OutputException(f"Values path is not a directory: {values_dir}")

    async def _write(self, path: Path, content: str) -> None:
        try:
            async with aiofiles.open(str(path), mode="w") as values_file:
                await values_file.write(content)
        except OSError as err:
            raise OutputException(f"Unable to write values file {path}: {err}")

    async def run(self) -> RunSummary:
        """Generate and write every values file, returning the run summary.

        Raises InputException when the apps root can't be read and
        OutputException when the values directory or a values file can't be
        written.
        """
        # Fail on an unreadable apps root before touching the output.
        self.discover_services()
        await self._prepare_output()
        summary = RunSummary()
        async for item in self.render():
            if item.content is not None:
                await self._write(item.result.path, item.content)
            summary.results.append(item.result)
        _LOGGER.info("Done. Review files under %s", self._config.values_dir)
        return summary
