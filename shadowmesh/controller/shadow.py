"""Naming and port helpers for shadow services."""

from __future__ import annotations

from collections.abc import Iterable

from shadowmesh.k8s.resources import PROTOCOL_TCP, PROTOCOL_UDP, ServicePort

_TRAFFIC_TYPE_HTTP = "http"
_TRAFFIC_TYPE_TCP = "tcp"
_TRAFFIC_TYPE_UDP = "udp"

_FNV128_OFFSET_BASIS = 0x6C62272E07BB014262B821756295C58D
_FNV128_PRIME = 0x0000000001000000000000000000013B
_FNV128_MASK = (1 << 128) - 1

_UNRESOLVABLE_PORT = 1666


def _fnv128a(data: bytes) -> int:
    digest = _FNV128_OFFSET_BASIS
    for byte in data:
        digest ^= byte
        digest = (digest * _FNV128_PRIME) & _FNV128_MASK
    return digest


def get_shadow_service_name(namespace: str, name: str) -> str:
    """Return the shadow service name for the given service namespace and name."""
    digest = _fnv128a((namespace + name).encode("utf-8"))
    return f"shadow-svc-{digest:032x}"


def get_removed_or_updated_ports(
    old_ports: Iterable[ServicePort], new_ports: Iterable[ServicePort]
) -> list[ServicePort]:
    """Return the old ports that no longer appear, by port and protocol, in the new ones.

    Ports that only exist in the new list are not returned.
    """
    current = {(sp.port, sp.protocol) for sp in new_ports}
    return [sp for sp in old_ports if (sp.port, sp.protocol) not in current]


def build_unresolvable_port() -> ServicePort:
    """Return a placeholder port for services without any compatible port."""
    return ServicePort(
        name="unresolvable-port", protocol=PROTOCOL_TCP, port=_UNRESOLVABLE_PORT
    )


def _is_port_compatible(traffic_type: str, service_port: ServicePort) -> bool:
    """Tell whether the port protocol suits the traffic type."""
    if traffic_type == _TRAFFIC_TYPE_UDP:
        return service_port.protocol == PROTOCOL_UDP
    if traffic_type in (_TRAFFIC_TYPE_TCP, _TRAFFIC_TYPE_HTTP):
        return service_port.protocol == PROTOCOL_TCP
    return False