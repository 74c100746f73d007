"""Detection and configuration of the cluster DNS provider for the mesh."""

from __future__ import annotations

import enum
import functools
import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Protocol

from shadowmesh.k8s.resources import (
    NAMESPACE_SYSTEM,
    ConfigMap,
    ConfigMapVolumeSource,
    Deployment,
    NotFoundError,
    ObjectMeta,
    Service,
)

BLOCK_HEADER = "#### Begin Traefik Mesh Block"
BLOCK_TRAILER = "#### End Traefik Mesh Block"

_CUSTOM_SERVER_KEY = "traefik.mesh.server"
_STUB_DOMAIN = "traefik.mesh"
_RESTART_ANNOTATION = "traefik-mesh-hash"

_log = logging.getLogger(__name__)


class Provider(enum.IntEnum):
    """DNS providers the mesh knows about."""

    UNKNOWN = 0
    COREDNS = 1
    KUBEDNS = 2


class DNSConfigError(Exception):
    """Raised when the cluster DNS cannot be detected or configured."""


_IDENT = r"[0-9A-Za-z\-~]+"
_VERSION_RE = re.compile(
    r"^v?(?P<segments>[0-9]+(?:\.[0-9]+)*)"
    r"(?:-(?P<pre>[0-9A-Za-z\-~]+(?:\." + _IDENT + r")*)"
    r"|(?P<pre2>[A-Za-z\-~][0-9A-Za-z\-~]*(?:\." + _IDENT + r")*))?"
    r"(?:\+(?P<meta>" + _IDENT + r"(?:\." + _IDENT + r")*))?$"
)


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class CoreDNSVersion:
    """A version number with optional pre-release and build metadata."""

    segments: tuple[int, ...]
    prerelease: str = ""
    metadata: str = ""

    @classmethod
    def parse(cls, text: str) -> CoreDNSVersion:
        """Parse a version such as "1.6.7", "v1.8.0" or "1.7.0-eks-1-18-1"."""
        match = _VERSION_RE.match(text.strip())
        if match is None:
            raise ValueError(f"malformed version: {text}")
        segments = tuple(int(part) for part in match["segments"].split("."))
        segments += (0,) * (3 - len(segments))
        prerelease = match["pre"] or match["pre2"] or ""
        return cls(segments, prerelease, match["meta"] or "")

    def core(self) -> CoreDNSVersion:
        """Return the version without pre-release and metadata."""
        return CoreDNSVersion(self.segments[:3])

    def _key(self) -> tuple:
        segments = list(self.segments)
        while len(segments) > 3 and segments[-1] == 0:
            segments.pop()
        if not self.prerelease:
            release: tuple = (1,)
        else:
            parts = tuple(
                (0, int(part), "") if part.isdigit() else (1, 0, part)
                for part in self.prerelease.split(".")
            )
            release = (0, parts)
        return (tuple(segments), release)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CoreDNSVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: CoreDNSVersion) -> bool:
        if not isinstance(other, CoreDNSVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = ".".join(str(s) for s in self.segments)
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.metadata:
            text += f"+{self.metadata}"
        return text


_VERSION_COREDNS_14 = CoreDNSVersion.parse("1.4")
_VERSION_COREDNS_MIN = CoreDNSVersion.parse("1.3")
_VERSION_COREDNS_MAX = CoreDNSVersion.parse("1.9")


class ClusterAPI(Protocol):
    """The cluster operations the DNS client relies on.

    Getters raise NotFoundError when the resource does not exist.
    """

    def get_deployment(self, namespace: str, name: str) -> Deployment:
        """Return the deployment."""

    def update_deployment(self, deployment: Deployment) -> None:
        """Store the deployment."""

    def get_config_map(self, namespace: str, name: str) -> ConfigMap:
        """Return the config map."""

    def create_config_map(self, config_map: ConfigMap) -> ConfigMap:
        """Create the config map and return it as stored."""

    def update_config_map(self, config_map: ConfigMap) -> None:
        """Store the config map."""

    def get_service(self, namespace: str, name: str) -> Service:
        """Return the service."""


class DNSClient:
    """Patches and restores the cluster DNS configuration for the mesh."""

    def __init__(
        self, api: ClusterAPI, retry_interval: float = 10.0, max_retries: int = 12
    ) -> None:
        self.api = api
        self.retry_interval = retry_interval
        self.max_retries = max_retries

    def check_dns_provider(self) -> Provider:
        """Return the supported DNS provider deployed in the cluster."""
        _log.debug("Detecting DNS provider...")
        if self._coredns_match():
            return Provider.COREDNS
        if self._kubedns_match():
            return Provider.KUBEDNS
        raise DNSConfigError("no supported DNS service available")

    def _coredns_match(self) -> bool:
        try:
            deployment = self.api.get_deployment(NAMESPACE_SYSTEM, "coredns")
        except NotFoundError:
            _log.debug("CoreDNS deployment not found")
            return False

        version = get_coredns_version(deployment)
        core = version.core()
        if not (_VERSION_COREDNS_MIN <= core < _VERSION_COREDNS_MAX):
            _log.debug(
                'CoreDNS version is not supported, must satisfy ">= %s, < %s", got "%s"',
                _VERSION_COREDNS_MIN,
                _VERSION_COREDNS_MAX,
                version,
            )
            raise DNSConfigError(f'unsupported CoreDNS version "{version}"')

        _log.debug('CoreDNS "%s" has been detected', version)
        return True

    def _kubedns_match(self) -> bool:
        try:
            self.api.get_deployment(NAMESPACE_SYSTEM, "kube-dns")
        except NotFoundError:
            _log.debug("KubeDNS deployment not found")
            return False
        _log.debug("KubeDNS has been detected")
        return True

    def configure_coredns(
        self, dns_service_namespace: str, dns_service_name: str, dns_service_port: int
    ) -> None:
        """Add the mesh stub domain to the CoreDNS configuration."""
        deployment = self.api.get_deployment(NAMESPACE_SYSTEM, "coredns")
        dns_service_ip = self._get_service_ip(dns_service_namespace, dns_service_name)

        try:
            config_map, changed = self._patch_coredns_config(
                deployment, dns_service_ip, dns_service_port
            )
        except (DNSConfigError, NotFoundError) as err:
            raise DNSConfigError(f"unable to patch coredns config: {err}") from err

        if not changed:
            _log.info(
                'CoreDNS ConfigMap "%s" in namespace "%s" has already been patched',
                config_map.name,
                config_map.namespace,
            )
            return

        self.api.update_config_map(config_map)
        _log.info(
            'CoreDNS ConfigMap "%s" in namespace "%s" has successfully been patched',
            config_map.name,
            config_map.namespace,
        )
        self._restart_pods(deployment)

    def _patch_coredns_config(
        self, deployment: Deployment, dns_service_ip: str, dns_service_port: int
    ) -> tuple[ConfigMap, bool]:
        version = get_coredns_version(deployment)

        # Some managed clusters only accept extra servers in the coredns-custom ConfigMap.
        try:
            config_map = self._get_config_map(deployment, "coredns-custom")
            key = _CUSTOM_SERVER_KEY
        except (DNSConfigError, NotFoundError):
            config_map = self._get_config_map(deployment, "coredns")
            key = "Corefile"

        corefile, changed = add_stub_domain(
            config_map.data.get(key, ""),
            BLOCK_HEADER,
            BLOCK_TRAILER,
            dns_service_ip,
            dns_service_port,
            version,
        )
        config_map.data[key] = corefile
        return config_map, changed

    def configure_kubedns(
        self, dns_service_namespace: str, dns_service_name: str, dns_service_port: int
    ) -> None:
        """Add the mesh stub domain to the KubeDNS configuration."""
        deployment = self.api.get_deployment(NAMESPACE_SYSTEM, "kube-dns")
        dns_service_ip = self._get_service_ip(dns_service_namespace, dns_service_name)
        _log.debug(
            'ClusterIP for Service "%s" in namespace "%s" is "%s"',
            dns_service_name,
            dns_service_namespace,
            dns_service_ip,
        )

        config_map = self._get_or_create_config_map(deployment, "kube-dns")
        stub_domains = _load_stub_domains(config_map)
        stub_domains[_STUB_DOMAIN] = [f"{dns_service_ip}:{dns_service_port}"]
        config_map.data["stubDomains"] = _dump_stub_domains(stub_domains)
        self.api.update_config_map(config_map)

        self._restart_pods(deployment)

    def restore_coredns(self) -> None:
        """Remove the mesh stub domain from the CoreDNS configuration."""
        deployment = self.api.get_deployment(NAMESPACE_SYSTEM, "coredns")

        try:
            config_map = self._unpatch_coredns_config(deployment)
        except (DNSConfigError, NotFoundError) as err:
            raise DNSConfigError(f"unable to unpatch coredns config: {err}") from err

        self.api.update_config_map(config_map)
        self._restart_pods(deployment)

    def _unpatch_coredns_config(self, deployment: Deployment) -> ConfigMap:
        try:
            config_map = self._get_config_map(deployment, "coredns-custom")
        except (DNSConfigError, NotFoundError):
            pass
        else:
            config_map.data.pop(_CUSTOM_SERVER_KEY, None)
            return config_map

        config_map = self._get_config_map(deployment, "coredns")
        config_map.data["Corefile"] = remove_stub_domain(
            config_map.data.get("Corefile", ""), BLOCK_HEADER, BLOCK_TRAILER
        )
        return config_map

    def restore_kubedns(self) -> None:
        """Remove the mesh stub domain from the KubeDNS configuration."""
        deployment = self.api.get_deployment(NAMESPACE_SYSTEM, "kube-dns")
        config_map = self._get_config_map(deployment, "kube-dns")

        if not config_map.data.get("stubDomains", ""):
            return

        stub_domains = _load_stub_domains(config_map)
        stub_domains.pop(_STUB_DOMAIN, None)
        config_map.data["stubDomains"] = _dump_stub_domains(stub_domains)
        self.api.update_config_map(config_map)

        self._restart_pods(deployment)

    def _get_or_create_config_map(self, deployment: Deployment, name: str) -> ConfigMap:
        volume = _get_config_map_volume(deployment, name)
        try:
            return self.api.get_config_map(deployment.namespace, volume.name)
        except NotFoundError:
            if not volume.optional:
                raise
        return self.api.create_config_map(
            ConfigMap(metadata=ObjectMeta(name=name, namespace=deployment.namespace))
        )

    def _get_config_map(self, deployment: Deployment, name: str) -> ConfigMap:
        volume = _get_config_map_volume(deployment, name)
        return self.api.get_config_map(deployment.namespace, volume.name)

    def _restart_pods(self, deployment: Deployment) -> None:
        _log.info('Restarting "%s" pods', deployment.name)
        deployment.template_annotations[_RESTART_ANNOTATION] = str(uuid.uuid4())
        self.api.update_deployment(deployment)

    def _get_service_ip(self, namespace: str, name: str) -> str:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                time.sleep(self.retry_interval)
            try:
                service = self.api.get_service(namespace, name)
            except Exception as err:  # any failure is retried
                last_error = err
                continue
            if service.spec.cluster_ip:
                return service.spec.cluster_ip
            last_error = DNSConfigError(
                f'service "{name}" in namespace "{namespace}" has no ClusterIP'
            )
        raise DNSConfigError(
            f'unable to get ClusterIP of DNS service "{name}" in namespace '
            f'"{namespace}": {last_error}'
        ) from last_error


def _load_stub_domains(config_map: ConfigMap) -> dict[str, list[str]]:
    text = config_map.data.get("stubDomains", "")
    if not text:
        return {}
    try:
        stub_domains = json.loads(text)
    except json.JSONDecodeError as err:
        raise DNSConfigError(f"unable to unmarshal stub domains: {err}") from err
    if not isinstance(stub_domains, dict):
        raise DNSConfigError("unable to unmarshal stub domains: not an object")
    return stub_domains


def _dump_stub_domains(stub_domains: dict[str, list[str]]) -> str:
    return json.dumps(stub_domains, sort_keys=True, separators=(",", ":"))


def _get_config_map_volume(deployment: Deployment, name: str) -> ConfigMapVolumeSource:
    for volume in deployment.volumes:
        if volume.config_map is not None and volume.config_map.name == name:
            return volume.config_map
    raise DNSConfigError(f'configmap "{name}" cannot be found')


def get_stub_domain(config: str, block_header: str, block_trailer: str) -> str:
    """Return the block between header and trailer included, or an empty string."""
    start = config.find(block_header)
    end = config.find(block_trailer)
    if start == -1 or end == -1:
        return ""
    return config[start : end + len(block_trailer)]


def add_stub_domain(
    config: str,
    block_header: str,
    block_trailer: str,
    dns_service_ip: str,
    dns_service_port: int,
    coredns_version: CoreDNSVersion,
) -> tuple[str, bool]:
    """Append the mesh stub domain block, replacing any existing one.

    Returns the new configuration and whether the block has changed.
    """
    existing = get_stub_domain(config, block_header, block_trailer)
    if existing:
        config = remove_stub_domain(config, block_header, block_trailer)

    forward = "proxy" if coredns_version < _VERSION_COREDNS_14 else "forward"
    stub_domain = (
        f"{block_header}\n"
        "traefik.mesh:53 {\n"
        "    errors\n"
        "    cache 30\n"
        f"    {forward} . {dns_service_ip}:{dns_service_port}\n"
        "}\n"
        f"{block_trailer}"
    )
    return config + "\n" + stub_domain + "\n", existing != stub_domain


def remove_stub_domain(config: str, block_header: str, block_trailer: str) -> str:
    """Remove the block delimited by header and trailer lines."""
    if block_header not in config:
        return config
    pre = config.split(block_header + "\n", 1)[0]
    parts = config.split(block_trailer + "\n", 1)
    post = parts[1] if len(parts) > 1 else ""
    return pre + post


def get_coredns_version(deployment: Deployment) -> CoreDNSVersion:
    """Return the version of the coredns container image of the deployment."""
    for container in deployment.containers:
        if container.name != "coredns":
            continue
        tag = container.image.split(":")[-1]
        try:
            return CoreDNSVersion.parse(tag)
        except ValueError as err:
            raise DNSConfigError(str(err)) from err
    raise DNSConfigError(
        f'unable to get CoreDNS container in deployment "{deployment.name}" '
        f'in namespace "{deployment.namespace}"'
    )