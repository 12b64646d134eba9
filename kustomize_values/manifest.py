"""Typed representation of the Kustomize manifests read by the generator.

Each manifest kind the generator understands is parsed from a raw YAML
document into a small dataclass holding only the fields that are projected
into a values file. Parsing is strict about fields the projection needs and
lenient about everything else.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, ClassVar, Optional

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import MalformedInputException, MissingInputException

__all__ = [
    "read_documents",
    "read_document",
    "StringScalarLoader",
    "Deployment",
    "Container",
    "Service",
    "ServicePort",
    "Ingress",
    "IngressPath",
    "Secret",
    "ScaledObject",
    "Kustomization",
    "KustomizeImage",
    "ExternalSecret",
]

_LOGGER = logging.getLogger(__name__)

DEPLOYMENT_KIND = "Deployment"
SERVICE_KIND = "Service"
INGRESS_KIND = "Ingress"
SECRET_KIND = "Secret"
SCALED_OBJECT_KIND = "ScaledObject"
KUSTOMIZE_KIND = "Kustomization"
EXTERNAL_SECRET_KIND = "ExternalSecret"

DEFAULT_PROTOCOL = "TCP"

_LOADER = getattr(yaml, "CSafeLoader", yaml.SafeLoader)

_SCALAR_TAGS = (
    "tag:yaml.org,2002:int",
    "tag:yaml.org,2002:float",
    "tag:yaml.org,2002:bool",
    "tag:yaml.org,2002:timestamp",
)


class StringScalarLoader(_LOADER):  # type: ignore[misc,valid-type]
    """Loader that keeps numbers, booleans and dates as their source text.

    Kustomization fields like `newTag` and labels are strings, so `1.10` must
    stay `1.10` rather than become the float `1.1`.
    """


for _tag in _SCALAR_TAGS:
    StringScalarLoader.add_constructor(
        _tag, yaml.constructor.SafeConstructor.construct_yaml_str
    )


async def read_documents(
    path: Path, loader: type[Any] = _LOADER
) -> list[dict[str, Any]]:
    """Return every non-empty YAML document in the file.

    Raises MissingInputException when the file does not exist and
    MalformedInputException when it can't be read as UTF-8 text, is not valid
    YAML, or a document is not a mapping.
    """
    try:
        async with aiofiles.open(str(path), encoding="utf-8") as manifest_file:
            content = await manifest_file.read()
    except FileNotFoundError as err:
        raise MissingInputException(f"{path}: file not found") from err
    except UnicodeDecodeError as err:
        raise MalformedInputException(str(path), f"not valid utf-8: {err}") from err
    except OSError as err:
        raise MalformedInputException(str(path), f"unable to read: {err}") from err
    try:
        docs = list(yaml.load_all(content, Loader=loader))
    except yaml.YAMLError as err:
        # Parser errors span several lines, keep the summary on one line
        detail = " ".join(str(err).split())
        raise MalformedInputException(str(path), f"failed to parse as yaml: {detail}")
    results: list[dict[str, Any]] = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise MalformedInputException(
                str(path), f"expected a mapping, got {type(doc).__name__}"
            )
        results.append(doc)
    return results


async def read_document(
    path: Path, loader: type[Any] = _LOADER
) -> dict[str, Any]:
    """Return the first YAML document in the file, or an empty mapping."""
    docs = await read_documents(path, loader)
    if len(docs) > 1:
        _LOGGER.debug("Ignoring %d extra documents in %s", len(docs) - 1, path)
    return docs[0] if docs else {}


def _mapping(value: Any, path: str, what: str) -> dict[str, Any]:
    """Return the value as a mapping, treating null as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedInputException(path, f"{what} must be a mapping")
    return value


def _sequence(value: Any, path: str, what: str) -> list[Any]:
    """Return the value as a list, treating null as empty."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedInputException(path, f"{what} must be a list")
    return value


def _metadata(doc: dict[str, Any], path: str) -> dict[str, Any]:
    return _mapping(doc.get("metadata"), path, "metadata")


def _spec(doc: dict[str, Any], path: str) -> dict[str, Any]:
    return _mapping(doc.get("spec"), path, "spec")


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Container(BaseManifest):
    """The fields of a container spec used by the values file."""

    image: str
    """The image reference, e.g. `repo/name:tag`."""

    resources: dict[str, Any] = field(default_factory=dict)
    """Resource requests and limits, passed through unchanged."""

    env: list[dict[str, Any]] = field(default_factory=list)
    """Environment variable entries."""

    def env_from_config_map(self, config_map: str) -> list[dict[str, Any]]:
        """Return env entries whose value references the named ConfigMap."""
        results = []
        for entry in self.env:
            value_from = entry.get("valueFrom") or {}
            ref = value_from.get("configMapKeyRef") or {}
            if ref.get("name") == config_map:
                results.append(entry)
        return results


@dataclass
class Deployment(BaseManifest):
    """A representation of a base Deployment."""

    kind: ClassVar[str] = DEPLOYMENT_KIND

    name: str | None
    """The name of the Deployment."""

    containers: list[Container]
    """The pod template containers, in order."""

    replicas: int = 1
    """The replica count, defaulting to one when unset."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "Deployment":
        """Parse a Deployment from a kubernetes resource object."""
        spec = _spec(doc, path)
        template = _mapping(spec.get("template"), path, "spec.template")
        pod_spec = _mapping(template.get("spec"), path, "spec.template.spec")
        raw_containers = _sequence(
            pod_spec.get("containers"), path, "spec.template.spec.containers"
        )
        if not raw_containers:
            raise MalformedInputException(
                path, "Deployment has no spec.template.spec.containers"
            )
        containers = []
        for i, container in enumerate(raw_containers):
            container = _mapping(container, path, f"containers[{i}]")
            if not (image := container.get("image")):
                raise MalformedInputException(path, f"containers[{i}] missing image")
            containers.append(
                Container(
                    image=str(image),
                    resources=_mapping(
                        container.get("resources"), path, f"containers[{i}].resources"
                    ),
                    env=_sequence(container.get("env"), path, f"containers[{i}].env"),
                )
            )
        replicas = spec.get("replicas")
        if replicas is None:
            replicas = 1
        elif not isinstance(replicas, int):
            raise MalformedInputException(
                path, f"spec.replicas is not a number: {replicas!r}"
            )
        return cls(
            name=_metadata(doc, path).get("name"),
            containers=containers,
            replicas=replicas,
        )

    @property
    def container(self) -> Container:
        """The primary container of the pod."""
        return self.containers[0]


@dataclass
class ServicePort(BaseManifest):
    """A single port exposed by a Service."""

    name: str
    port: int
    target_port: int | str = field(metadata=field_options(alias="targetPort"))
    protocol: str = DEFAULT_PROTOCOL

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "ServicePort":
        """Parse a ServicePort, applying kubernetes defaults."""
        if (port := doc.get("port")) is None:
            raise MalformedInputException(path, f"Service port missing port: {doc}")
        target_port = doc.get("targetPort")
        return cls(
            name=doc.get("name") or "",
            port=port,
            target_port=port if target_port is None else target_port,
            protocol=doc.get("protocol") or DEFAULT_PROTOCOL,
        )


@dataclass
class Service(BaseManifest):
    """A representation of a base Service."""

    kind: ClassVar[str] = SERVICE_KIND

    name: str | None
    """The name of the Service."""

    ports: list[ServicePort]
    """All ports in declaration order."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "Service":
        """Parse a Service from a kubernetes resource object."""
        spec = _spec(doc, path)
        raw_ports = _sequence(spec.get("ports"), path, "spec.ports")
        if not raw_ports:
            raise MalformedInputException(path, "Service has no spec.ports")
        return cls(
            name=_metadata(doc, path).get("name"),
            ports=[
                ServicePort.parse_doc(_mapping(port, path, "spec.ports[]"), path)
                for port in raw_ports
            ],
        )

    @property
    def primary_port(self) -> ServicePort:
        """The first port declared by the Service."""
        return self.ports[0]


@dataclass
class IngressPath(BaseManifest):
    """A single HTTP path rule routed to a backend service."""

    path: str | None
    path_type: str | None = field(metadata=field_options(alias="pathType"))
    service_name: str | None = field(metadata=field_options(alias="serviceName"))
    port: int | str | None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "IngressPath":
        """Parse an Ingress HTTP path."""
        backend = _mapping(doc.get("backend"), path, "backend")
        service = _mapping(backend.get("service"), path, "backend.service")
        port = _mapping(service.get("port"), path, "backend.service.port")
        return cls(
            path=doc.get("path"),
            path_type=doc.get("pathType"),
            service_name=service.get("name"),
            port=port.get("number", port.get("name")),
        )


@dataclass
class Ingress(BaseManifest):
    """A representation of a base Ingress or an ingress patch."""

    kind: ClassVar[str] = INGRESS_KIND

    annotations: dict[str, Any] = field(default_factory=dict)
    """The ingress annotations in source order."""

    class_name: str | None = None
    """The `spec.ingressClassName` if declared."""

    host: str | None = None
    """The host of the first rule, if any."""

    paths: list[IngressPath] = field(default_factory=list)
    """HTTP paths of the first rule."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "Ingress":
        """Parse an Ingress from a kubernetes resource object."""
        spec = _spec(doc, path)
        rules = _sequence(spec.get("rules"), path, "spec.rules")
        host = None
        paths: list[IngressPath] = []
        if rules:
            rule = _mapping(rules[0], path, "spec.rules[0]")
            host = rule.get("host")
            http = _mapping(rule.get("http"), path, "spec.rules[0].http")
            paths = [
                IngressPath.parse_doc(_mapping(p, path, "http.paths[]"), path)
                for p in _sequence(http.get("paths"), path, "http.paths")
            ]
        return cls(
            annotations=_mapping(
                _metadata(doc, path).get("annotations"), path, "metadata.annotations"
            ),
            class_name=spec.get("ingressClassName"),
            host=host,
            paths=paths,
        )


@dataclass
class Secret(BaseManifest):
    """A base Secret, only its name is relevant."""

    kind: ClassVar[str] = SECRET_KIND

    name: str

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "Secret":
        """Parse a Secret from a kubernetes resource object."""
        if not (name := _metadata(doc, path).get("name")):
            raise MalformedInputException(path, "Secret missing metadata.name")
        return cls(name=name)


@dataclass
class ScaledObject(BaseManifest):
    """A KEDA ScaledObject used for autoscaling."""

    kind: ClassVar[str] = SCALED_OBJECT_KIND

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
    """Trigger definitions, passed through unchanged."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "ScaledObject":
        """Parse a ScaledObject from a kubernetes resource object."""
        spec = _spec(doc, path)
        return cls(
            polling_interval=spec.get("pollingInterval"),
            cooldown_period=spec.get("cooldownPeriod"),
            min_replica_count=spec.get("minReplicaCount"),
            max_replica_count=spec.get("maxReplicaCount"),
            triggers=_sequence(spec.get("triggers"), path, "spec.triggers"),
        )


@dataclass
class KustomizeImage(BaseManifest):
    """An entry in the `images` section of a kustomization."""

    name: str | None = None
    new_name: str | None = field(
        metadata=field_options(alias="newName"), default=None
    )
    new_tag: str | None = field(metadata=field_options(alias="newTag"), default=None)


@dataclass
class Kustomization(BaseManifest):
    """An overlay `kustomization.yaml` (kustomize.config.k8s.io)."""

    kind: ClassVar[str] = KUSTOMIZE_KIND

    images: list[KustomizeImage] = field(default_factory=list)
    """Image overrides, in order."""

    common_labels: dict[str, Any] = field(
        metadata=field_options(alias="commonLabels"), default_factory=dict
    )
    """Labels added to every resource."""

    config_map_literals: list[str] = field(default_factory=list)
    """The `literals` of the first configMapGenerator."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "Kustomization":
        """Parse a Kustomization from a kustomization.yaml document."""
        images = []
        for image in _sequence(doc.get("images"), path, "images"):
            image = _mapping(image, path, "images[]")
            new_tag = image.get("newTag")
            images.append(
                KustomizeImage(
                    name=image.get("name"),
                    new_name=image.get("newName"),
                    new_tag=None if new_tag is None else str(new_tag),
                )
            )
        literals: list[str] = []
        if generators := _sequence(
            doc.get("configMapGenerator"), path, "configMapGenerator"
        ):
            generator = _mapping(generators[0], path, "configMapGenerator[0]")
            literals = [
                str(literal)
                for literal in _sequence(
                    generator.get("literals"), path, "configMapGenerator[0].literals"
                )
            ]
        return cls(
            images=images,
            common_labels=_mapping(doc.get("commonLabels"), path, "commonLabels"),
            config_map_literals=literals,
        )

    def image_tag(self, repository: str | None = None) -> str | None:
        """Return the tag override for the image repository.

        Falls back to the first image entry when no entry names the repository.
        """
        for image in self.images:
            if repository and image.name == repository and image.new_tag:
                return image.new_tag
        if self.images:
            return self.images[0].new_tag or None
        return None

    def literals(self, path: str = "<doc>") -> dict[str, str]:
        """Return configMapGenerator literals as an ordered mapping."""
        data: dict[str, str] = {}
        for literal in self.config_map_literals:
            key, sep, value = literal.partition("=")
            if not sep or not key:
                raise MalformedInputException(
                    path, f"configMapGenerator literal is not KEY=VALUE: {literal!r}"
                )
            data[key] = value
        return data

    @property
    def version(self) -> str | None:
        """The `version` common label, if set."""
        if (version := self.common_labels.get("version")) is None:
            return None
        return str(version)


@dataclass
class ExternalSecret(BaseManifest):
    """An ExternalSecret document from an overlay patch."""

    kind: ClassVar[str] = EXTERNAL_SECRET_KIND

    name: str | None
    secret_store_ref: dict[str, Any] | None = field(
        metadata=field_options(alias="secretStoreRef"), default=None
    )
    refresh_interval: str | None = field(
        metadata=field_options(alias="refreshInterval"), default=None
    )
    target_name: str | None = field(
        metadata=field_options(alias="targetName"), default=None
    )
    data: list[dict[str, Any]] = field(default_factory=list)

    class Config(BaseConfig):
        # Entries keep a uniform shape, absent fields are written as null
        omit_none = False
        serialize_by_alias = True

    @classmethod
    def parse_doc(cls, doc: dict[str, Any], path: str = "<doc>") -> "ExternalSecret":
        """Parse an ExternalSecret from a kubernetes resource object."""
        spec = _spec(doc, path)
        target = _mapping(spec.get("target"), path, "spec.target")
        return cls(
            name=_metadata(doc, path).get("name"),
            secret_store_ref=spec.get("secretStoreRef"),
            refresh_interval=spec.get("refreshInterval"),
            target_name=target.get("name"),
            data=_sequence(spec.get("data"), path, "spec.data"),
        )
