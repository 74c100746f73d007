"""Rules deciding which cluster resources the mesh ignores."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from shadowmesh.k8s.resources import SERVICE_TYPE_EXTERNAL_NAME, ObjectMeta, Service

ResourceFilterOption = Callable[["ResourceFilter"], None]


def watch_namespaces(*args: str) -> ResourceFilterOption:
    """Option adding the given namespaces to the watched ones."""

    def apply(resource_filter: ResourceFilter) -> None:
        resource_filter.watched_namespaces.extend(args)

    return apply


def ignore_namespaces(*args: str) -> ResourceFilterOption:
    """Option adding the given namespaces to the ignored ones."""

    def apply(resource_filter: ResourceFilter) -> None:
        resource_filter.ignored_namespaces.extend(args)

    return apply


def ignore_label(name: str, value: str) -> ResourceFilterOption:
    """Option ignoring resources carrying the given label value."""

    def apply(resource_filter: ResourceFilter) -> None:
        resource_filter.ignored_labels[name] = value

    return apply


def ignore_service(namespace: str, name: str) -> ResourceFilterOption:
    """Option ignoring the given service."""

    def apply(resource_filter: ResourceFilter) -> None:
        resource_filter.ignored_services.append((namespace, name))

    return apply


class ResourceFilter:
    """Holds the filtering rules; built from options applied in order."""

    def __init__(self, *args: ResourceFilterOption) -> None:
        self.watched_namespaces: list[str] = []
        self.ignored_namespaces: list[str] = []
        self.ignored_services: list[tuple[str, str]] = []
        self.ignored_labels: dict[str, str] = {}
        for option in args:
            option(self)

    def is_ignored(self, obj: Any) -> bool:
        """Return True if the resource should be ignored."""
        meta = getattr(obj, "metadata", None)
        if not isinstance(meta, ObjectMeta):
            return True

        if self.watched_namespaces and meta.namespace not in self.watched_namespaces:
            return True

        if meta.namespace in self.ignored_namespaces:
            return True

        for label, value in self.ignored_labels.items():
            if label in meta.labels and meta.labels[label] == value:
                return True

        if isinstance(obj, Service):
            if (obj.namespace, obj.name) in self.ignored_services:
                return True
            # ExternalName services are not supported.
            if obj.spec.type == SERVICE_TYPE_EXTERNAL_NAME:
                return True

        return False