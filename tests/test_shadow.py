import re

import pytest

from shadowmesh.controller.shadow import (
    _is_port_compatible,
    build_unresolvable_port,
    get_removed_or_updated_ports,
    get_shadow_service_name,
)
from shadowmesh.k8s.resources import (
    PROTOCOL_SCTP,
    PROTOCOL_TCP,
    PROTOCOL_UDP,
    ServicePort,
)


def test_shadow_service_name_known_value():
    assert (
        get_shadow_service_name("default", "whoami")
        == "shadow-svc-247b8d4abd40affb14cc82edca56b2c7"
    )


def test_shadow_service_name_format_and_determinism():
    first = get_shadow_service_name("ns", "svc")
    assert re.fullmatch(r"shadow-svc-[0-9a-f]{32}", first)
    assert get_shadow_service_name("ns", "svc") == first
    assert get_shadow_service_name("ns", "svc2") != first


def test_removed_or_updated_ports():
    old = [
        ServicePort(name="a", protocol=PROTOCOL_TCP, port=8000, target_port=5000),
        ServicePort(name="b", protocol=PROTOCOL_TCP, port=9001, target_port=5001),
        ServicePort(name="c", protocol=PROTOCOL_TCP, port=7000, target_port=5002),
    ]
    new = [
        ServicePort(name="x", protocol=PROTOCOL_TCP, port=9000),
        ServicePort(name="y", protocol=PROTOCOL_TCP, port=9001),
        ServicePort(name="z", protocol=PROTOCOL_UDP, port=7000),
    ]
    result = get_removed_or_updated_ports(old, new)
    assert [sp.port for sp in result] == [8000, 7000]


def test_removed_or_updated_ports_none_changed():
    ports = [ServicePort(protocol=PROTOCOL_TCP, port=80)]
    assert get_removed_or_updated_ports(ports, list(ports)) == []


def test_build_unresolvable_port():
    port = build_unresolvable_port()
    assert port == ServicePort(
        name="unresolvable-port", protocol=PROTOCOL_TCP, port=1666
    )


@pytest.mark.parametrize(
    "traffic_type, protocol, expected",
    [
        ("udp", PROTOCOL_UDP, True),
        ("udp", PROTOCOL_SCTP, False),
        ("http", PROTOCOL_TCP, True),
        ("tcp", PROTOCOL_TCP, True),
        ("http", PROTOCOL_SCTP, False),
        ("tcp", PROTOCOL_UDP, False),
        ("pigeon", PROTOCOL_TCP, False),
    ],
)
def test_is_port_compatible(traffic_type, protocol, expected):
    assert _is_port_compatible(traffic_type, ServicePort(protocol=protocol)) is expected