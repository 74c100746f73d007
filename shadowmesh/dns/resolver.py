"""Resolution of mesh domain names to shadow service cluster IPs."""

from __future__ import annotations

import ipaddress

import dns.exception
import dns.name

from shadowmesh.controller.shadow import get_shadow_service_name
from shadowmesh.k8s.resources import (
    LABEL_SERVICE_NAME,
    LABEL_SERVICE_NAMESPACE,
    NotFoundError,
    ServiceStore,
)


class ResolveError(Exception):
    """Raised when a name cannot be resolved to a shadow service."""


class ShadowServiceResolver:
    """Resolves name.namespace.<domain> to the matching shadow service ClusterIP."""

    def __init__(self, domain: str, namespace: str, service_lister: ServiceStore) -> None:
        self.domain = domain
        self.namespace = namespace
        self.service_lister = service_lister

    def lookup_fqdn(self, fqdn: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        """Return the ClusterIP of the shadow service for the given FQDN."""
        namespace, name = self.parse_namespace_and_name(fqdn)
        shadow_name = get_shadow_service_name(namespace, name)

        try:
            shadow_svc = self.service_lister.get(self.namespace, shadow_name)
        except NotFoundError as err:
            raise ResolveError(
                f'unable to get shadow service "{shadow_name}": {err}'
            ) from err

        labels = shadow_svc.labels
        if (
            labels.get(LABEL_SERVICE_NAMESPACE, "") != namespace
            or labels.get(LABEL_SERVICE_NAME, "") != name
        ):
            raise ResolveError(
                f'service labels in "{shadow_name}" does not match service name '
                f'"{name}" and namespace "{namespace}"'
            )

        try:
            return ipaddress.ip_address(shadow_svc.spec.cluster_ip)
        except ValueError as err:
            raise ResolveError(
                f'shadow service "{shadow_name}" has no valid ClusterIP'
            ) from err

    def parse_namespace_and_name(self, fqdn: str) -> tuple[str, str]:
        """Return (namespace, name) taken from the first two labels of the FQDN."""
        try:
            domain = dns.name.from_text(self.domain)
            name = dns.name.from_text(fqdn)
        except dns.exception.DNSException as err:
            raise ResolveError(f'malformed name "{fqdn}"') from err

        if not name.is_subdomain(domain):
            raise ResolveError(
                f'name "{fqdn}" is not a subdomain of "{domain.to_text()}"'
            )

        labels = name.labels[:-1]
        domain_labels = domain.labels[:-1]
        if len(labels) - len(domain_labels) < 2:
            raise ResolveError(f'malformed name "{fqdn}"')

        return labels[1].decode(), labels[0].decode()