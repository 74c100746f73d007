import ipaddress

import pytest

from shadowmesh.dns.resolver import ResolveError, ShadowServiceResolver
from shadowmesh.k8s.resources import (
    LABEL_SERVICE_NAME,
    LABEL_SERVICE_NAMESPACE,
    ObjectMeta,
    Service,
    ServiceSpec,
    ServiceStore,
)

SHADOW_NAME = "shadow-svc-247b8d4abd40affb14cc82edca56b2c7"


def make_resolver(*services):
    return ShadowServiceResolver("traefik.mesh", "traefik-mesh", ServiceStore(*services))


def shadow_service(namespace_label, cluster_ip=""):
    return Service(
        metadata=ObjectMeta(
            name=SHADOW_NAME,
            namespace="traefik-mesh",
            labels={
                LABEL_SERVICE_NAME: "whoami",
                LABEL_SERVICE_NAMESPACE: namespace_label,
            },
        ),
        spec=ServiceSpec(cluster_ip=cluster_ip),
    )


def test_lookup_missing_shadow_service():
    resolver = make_resolver(Service())
    with pytest.raises(ResolveError):
        resolver.lookup_fqdn("foo.default.traefik.mesh.")


def test_lookup_returns_cluster_ip():
    resolver = make_resolver(shadow_service("default", "10.10.10.10"))
    assert resolver.lookup_fqdn("whoami.default.traefik.mesh.") == ipaddress.ip_address(
        "10.10.10.10"
    )


def test_lookup_hash_collision():
    resolver = make_resolver(shadow_service("whoami"))
    with pytest.raises(ResolveError, match="does not match"):
        resolver.lookup_fqdn("whoami.default.traefik.mesh.")


def test_parse_namespace_and_name():
    resolver = make_resolver()
    assert resolver.parse_namespace_and_name("name.namespace.traefik.mesh.") == (
        "namespace",
        "name",
    )


def test_parse_extra_labels_takes_leftmost_two():
    resolver = make_resolver()
    assert resolver.parse_namespace_and_name("a.name.namespace.traefik.mesh.") == (
        "name",
        "a",
    )


@pytest.mark.parametrize(
    "fqdn",
    ["namespace.traefik.mesh.", "name.namespace.traefik.local.", "traefik.mesh."],
)
def test_parse_errors(fqdn):
    resolver = make_resolver()
    with pytest.raises(ResolveError):
        resolver.parse_namespace_and_name(fqdn)