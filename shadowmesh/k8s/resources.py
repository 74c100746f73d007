"""Cluster resource models, well-known labels and an in-memory service store."""

from __future__ import annotations

import copy
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

RESYNC_PERIOD = timedelta(minutes=5)

TRAFFIC_SPLIT_OBJECT_KIND = "TrafficSplit"
TRAFFIC_TARGET_OBJECT_KIND = "TrafficTarget"
HTTP_ROUTE_GROUP_OBJECT_KIND = "HTTPRouteGroup"
TCP_ROUTE_OBJECT_KIND = "TCPRoute"

CORE_OBJECT_KINDS = "Deployment|Endpoints|Service|Ingress|Secret|Namespace|Pod|ConfigMap"
ACCESS_OBJECT_KINDS = TRAFFIC_TARGET_OBJECT_KIND
SPECS_OBJECT_KINDS = HTTP_ROUTE_GROUP_OBJECT_KIND + "|" + TCP_ROUTE_OBJECT_KIND
SPLIT_OBJECT_KINDS = TRAFFIC_SPLIT_OBJECT_KIND

LABEL_NAME = "app.kubernetes.io/name"
LABEL_COMPONENT = "app.kubernetes.io/component"
LABEL_PART_OF = "app.kubernetes.io/part-of"
LABEL_SERVICE_NAME = "mesh.traefik.io/service-name"
LABEL_SERVICE_NAMESPACE = "mesh.traefik.io/service-namespace"

APP_NAME = "traefik-mesh"
COMPONENT_PROXY = "proxy"
COMPONENT_SHADOW_SERVICE = "shadow-service"

NAMESPACE_SYSTEM = "kube-system"
NAMESPACE_DEFAULT = "default"

PROTOCOL_TCP = "TCP"
PROTOCOL_UDP = "UDP"
PROTOCOL_SCTP = "SCTP"

SERVICE_TYPE_CLUSTER_IP = "ClusterIP"
SERVICE_TYPE_EXTERNAL_NAME = "ExternalName"


class NotFoundError(LookupError):
    """Raised when a requested resource does not exist."""


@dataclass
class ObjectMeta:
    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""


@dataclass
class _Resource:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.annotations


@dataclass
class ServicePort:
    name: str = ""
    protocol: str = PROTOCOL_TCP
    port: int = 0
    target_port: int = 0


@dataclass
class ServiceSpec:
    ports: list[ServicePort] = field(default_factory=list)
    selector: dict[str, str] = field(default_factory=dict)
    cluster_ip: str = ""
    type: str = SERVICE_TYPE_CLUSTER_IP


@dataclass
class Service(_Resource):
    spec: ServiceSpec = field(default_factory=ServiceSpec)


@dataclass
class Pod(_Resource):
    pass


@dataclass
class Endpoints(_Resource):
    pass


@dataclass
class Container:
    name: str = ""
    image: str = ""


@dataclass
class ConfigMapVolumeSource:
    name: str = ""
    optional: bool | None = None


@dataclass
class Volume:
    name: str = ""
    config_map: ConfigMapVolumeSource | None = None


@dataclass
class Deployment(_Resource):
    containers: list[Container] = field(default_factory=list)
    volumes: list[Volume] = field(default_factory=list)
    template_annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class ConfigMap(_Resource):
    data: dict[str, str] = field(default_factory=dict)


def shadow_service_labels() -> dict[str, str]:
    """Return a fresh dict of the labels carried by shadow services."""
    return {
        LABEL_NAME: APP_NAME,
        LABEL_COMPONENT: COMPONENT_SHADOW_SERVICE,
        LABEL_PART_OF: APP_NAME,
    }


def proxy_labels() -> dict[str, str]:
    """Return a fresh dict of the labels carried by proxies."""
    return {
        LABEL_NAME: APP_NAME,
        LABEL_COMPONENT: COMPONENT_PROXY,
        LABEL_PART_OF: APP_NAME,
    }


def matches_labels(labels: Mapping[str, str], selector: Mapping[str, str] | None) -> bool:
    """Tell whether the labels hold every key and value of the selector."""
    if not selector:
        return True
    return all(key in labels and labels[key] == value for key, value in selector.items())


class ServiceStore:
    """A thread-safe in-memory store of services, keyed by namespace and name."""

    def __init__(self, *args: Service) -> None:
        self._lock = threading.Lock()
        self._services: dict[tuple[str, str], Service] = {}
        for service in args:
            self.add(service)

    def add(self, service: Service) -> None:
        """Store a copy of the service, replacing any with the same key."""
        with self._lock:
            self._services[(service.namespace, service.name)] = copy.deepcopy(service)

    def get(self, namespace: str, name: str) -> Service:
        """Return a copy of the service, or raise NotFoundError."""
        with self._lock:
            try:
                return copy.deepcopy(self._services[(namespace, name)])
            except KeyError:
                raise NotFoundError(
                    f'service "{name}" not found in namespace "{namespace}"'
                ) from None

    def delete(self, namespace: str, name: str) -> None:
        """Remove the service, or raise NotFoundError."""
        with self._lock:
            try:
                del self._services[(namespace, name)]
            except KeyError:
                raise NotFoundError(
                    f'service "{name}" not found in namespace "{namespace}"'
                ) from None

    def list(
        self, namespace: str, selector: Mapping[str, str] | None = None
    ) -> list[Service]:
        """Return copies of the services in the namespace matching the selector."""
        with self._lock:
            found = [
                copy.deepcopy(svc)
                for (ns, _), svc in self._services.items()
                if ns == namespace and matches_labels(svc.labels, selector)
            ]
        return sorted(found, key=lambda svc: svc.name)