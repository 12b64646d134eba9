"""Module for building Helm values documents from Kustomize manifests.

The values documents mirror the layout expected by the service chart
templates: `image.repository/tag`, `service.port/targetPort/ports`,
`ingress.*`, `resources`, `config.*`, `secret.*`, `externalSecrets[]` and
`scaledObject.*`. A base document is built for each service and an
environment document is built for each overlay, which Helm layers on top of
the base document.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Optional

import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .config import GeneratorConfig
from .manifest import (
    Deployment,
    ExternalSecret,
    Ingress,
    IngressPath,
    Kustomization,
    ScaledObject,
    Secret,
    Service,
    ServicePort,
)

__all__ = [
    "split_image",
    "build_base_values",
    "build_env_values",
    "render_values",
    "BaseValues",
    "EnvValues",
]

_LOGGER = logging.getLogger(__name__)

HEADER = "# Generated by kustomize-values. Do not edit by hand.\n"

SECRET_NAME_TEMPLATE = "{service}-secrets"
CONFIG_NAME_TEMPLATE = "{service}-config"


def split_image(image: str) -> tuple[str, str]:
    """Split an image reference into repository and tag.

    The tag follows the last `:` in the reference. A reference without a tag
    returns an empty tag, including when the only `:` is a registry port.
    Digest references are returned whole as the repository.
    """
    if "@" in image:
        return image, ""
    repository, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, ""
    return repository, tag


@dataclass
class ValuesDocument(DataClassDictMixin):
    """Base class for values documents and their sections."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class ImageValues(ValuesDocument):
    """The `image` section."""

    repository: Optional[str] = None
    tag: Optional[str] = None


@dataclass
class ServiceValues(ValuesDocument):
    """The `service` section of a base document."""

    name: str
    port: int
    target_port: int | str = field(metadata=field_options(alias="targetPort"))
    ports: list[ServicePort] = field(default_factory=list)


@dataclass
class ServiceLabelValues(ValuesDocument):
    """The `service` section of an environment document."""

    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class IngressValues(ValuesDocument):
    """The `ingress` section of a base document."""

    enabled: bool
    internal: bool
    class_name: str = field(metadata=field_options(alias="className"))
    host: Optional[str] = None
    annotations: dict[str, Any] = field(default_factory=dict)
    paths: list[IngressPath] = field(default_factory=list)


@dataclass
class IngressAnnotationValues(ValuesDocument):
    """The `ingress` section of an environment document."""

    annotations: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConfigValues(ValuesDocument):
    """The `config` section, the ConfigMap rendered by the chart."""

    create: Optional[bool] = None
    name: Optional[str] = None
    data: dict[str, str] = field(default_factory=dict)


@dataclass
class SecretValues(ValuesDocument):
    """The `secret` section."""

    create: bool
    name: str


@dataclass
class ScaledObjectValues(ValuesDocument):
    """The `scaledObject` section rendered from a KEDA ScaledObject."""

    enabled: bool = True
    polling_interval: Optional[int] = field(
        metadata=field_options(alias="pollingInterval"), default=None
    )
    cooldown_period: Optional[int] = field(
        metadata=field_options(alias="cooldownPeriod"), default=None
    )
    min_replica_count: Optional[int] = field(
        metadata=field_options(alias="minReplicaCount"), default=None
    )
    max_replica_count: Optional[int] = field(
        metadata=field_options(alias="maxReplicaCount"), default=None
    )
    triggers: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_scaled_object(cls, scaled_object: ScaledObject) -> "ScaledObjectValues":
        """Create the section from a ScaledObject manifest."""
        return cls(
            polling_interval=scaled_object.polling_interval,
            cooldown_period=scaled_object.cooldown_period,
            min_replica_count=scaled_object.min_replica_count,
            max_replica_count=scaled_object.max_replica_count,
            triggers=scaled_object.triggers,
        )


@dataclass
class BaseValues(ValuesDocument):
    """The values document shared by every environment of a service."""

    replica_count: int = field(metadata=field_options(alias="replicaCount"))
    service: ServiceValues
    ingress: IngressValues
    image: ImageValues
    resources: dict[str, Any]
    config: ConfigValues
    secret: SecretValues
    external_secrets: list[ExternalSecret] = field(
        metadata=field_options(alias="externalSecrets"), default_factory=list
    )
    extra_env: Optional[list[dict[str, Any]]] = field(
        metadata=field_options(alias="extraEnv"), default=None
    )
    scaled_object: Optional[ScaledObjectValues] = field(
        metadata=field_options(alias="scaledObject"), default=None
    )


@dataclass
class EnvValues(ValuesDocument):
    """The values document for a single environment overlay."""

    image: Optional[ImageValues] = None
    service: Optional[ServiceLabelValues] = None
    config: ConfigValues = field(default_factory=ConfigValues)
    ingress: IngressAnnotationValues = field(default_factory=IngressAnnotationValues)
    external_secrets: Optional[list[ExternalSecret]] = field(
        metadata=field_options(alias="externalSecrets"), default=None
    )


def _ingress_values(ingress: Ingress | None, config: GeneratorConfig) -> IngressValues:
    """Build the ingress section, defaulted when there is no base ingress."""
    if ingress is None:
        return IngressValues(
            enabled=False,
            internal=False,
            class_name=config.default_ingress_class,
        )
    scheme = ingress.annotations.get(config.internal_scheme_annotation)
    return IngressValues(
        enabled=True,
        internal=scheme == config.internal_scheme_value,
        class_name=ingress.class_name or config.default_ingress_class,
        host=ingress.host,
        annotations=ingress.annotations,
        paths=ingress.paths,
    )


def build_base_values(
    service_name: str,
    deployment: Deployment,
    service: Service,
    config: GeneratorConfig,
    ingress: Ingress | None = None,
    secret: Secret | None = None,
    scaled_object: ScaledObject | None = None,
) -> BaseValues:
    """Project the base manifests of a service into a base values document."""
    container = deployment.container
    repository, tag = split_image(container.image)
    primary = service.primary_port
    values = BaseValues(
        replica_count=deployment.replicas,
        service=ServiceValues(
            name=service_name,
            port=primary.port,
            target_port=primary.target_port,
            ports=service.ports,
        ),
        ingress=_ingress_values(ingress, config),
        image=ImageValues(repository=repository, tag=tag),
        resources=container.resources,
        config=ConfigValues(
            create=True,
            name=CONFIG_NAME_TEMPLATE.format(service=service_name),
        ),
        secret=SecretValues(
            create=False,
            name=(
                secret.name
                if secret is not None
                else SECRET_NAME_TEMPLATE.format(service=service_name)
            ),
        ),
    )
    if extra_env := container.env_from_config_map(config.shared_config_map):
        _LOGGER.debug(
            "%s: %d env entries reference %s",
            service_name,
            len(extra_env),
            config.shared_config_map,
        )
        values.extra_env = extra_env
    if scaled_object is not None:
        values.scaled_object = ScaledObjectValues.from_scaled_object(scaled_object)
    return values


def build_env_values(
    kustomization: Kustomization,
    repository: str | None = None,
    ingress_patch: Ingress | None = None,
    external_secrets: list[ExternalSecret] | None = None,
    path: str = "<doc>",
) -> EnvValues:
    """Project an overlay into an environment values document."""
    values = EnvValues(
        config=ConfigValues(data=kustomization.literals(path)),
    )
    if tag := kustomization.image_tag(repository):
        values.image = ImageValues(tag=tag)
    if (version := kustomization.version) is not None:
        values.service = ServiceLabelValues(labels={"version": version})
    if ingress_patch is not None:
        values.ingress = IngressAnnotationValues(annotations=ingress_patch.annotations)
    if external_secrets is not None:
        values.external_secrets = external_secrets
    return values


class _ValuesDumper(yaml.SafeDumper):
    """Dumper that never emits anchors and keeps multi-line strings readable."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _str_presenter(dumper: yaml.SafeDumper, data: str) -> Any:
    """Represent multi-line yaml strings as you'd expect.

    See https://github.com/yaml/pyyaml/issues/240
    """
    return dumper.represent_scalar(
        "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
    )


_ValuesDumper.add_representer(str, _str_presenter)


def render_values(values: ValuesDocument) -> str:
    """Render a values document as YAML, preserving field order."""
    content = yaml.dump(
        values.to_dict(),
        Dumper=_ValuesDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
    return HEADER + content
