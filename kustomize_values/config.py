"""Configuration objects for kustomize-values."""

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_APPS_DIR = Path("apps")
DEFAULT_VALUES_DIR = Path("helm/values/services")


@dataclass
class GeneratorConfig:
    """Configuration for the ValuesGenerator."""

    apps_dir: Path = DEFAULT_APPS_DIR
    """Root directory holding one subdirectory per service."""

    values_dir: Path = DEFAULT_VALUES_DIR
    """Directory where values files are written."""

    exclude_services: list[str] = field(default_factory=lambda: ["shared-infra"])
    """Directory names under the apps root that are never services."""

    services: list[str] | None = None
    """When set, only these services are processed."""

    shared_config_map: str = "shared-configmap"
    """Env entries referencing this ConfigMap are surfaced as extraEnv."""

    default_ingress_class: str = "alb"
    """Ingress class used when the base ingress does not declare one."""

    internal_scheme_annotation: str = "alb.ingress.kubernetes.io/scheme"
    """Ingress annotation that decides whether the ingress is internal."""

    internal_scheme_value: str = "internal"
    """Value of the scheme annotation for an internal ingress."""

    def is_selected(self, service: str) -> bool:
        """Return true if the service directory should be processed."""
        if service in self.exclude_services:
            return False
        return self.services is None or service in self.services
