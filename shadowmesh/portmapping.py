"""Allocation of proxy target ports to service ports."""

from __future__ import annotations

import threading


class PortMappingError(Exception):
    """Raised when a service port cannot be mapped to a target port."""


def _check_range(min_port: int, max_port: int, port: int) -> None:
    if port < min_port or port > max_port:
        raise PortMappingError(
            f"port must be between {min_port} and {max_port}, got {port}"
        )


class PortMapping:
    """Maps every service port to a target port of its own within a range."""

    def __init__(self, min_port: int, max_port: int) -> None:
        self.min_port = min_port
        self.max_port = max_port
        self._lock = threading.Lock()
        self._table: dict[int, tuple[str, str, int]] = {}

    def find(self, namespace: str, name: str, port: int) -> int | None:
        """Return the target port mapped to the given service port, or None."""
        wanted = (namespace, name, port)
        with self._lock:
            return next(
                (target for target, sp in self._table.items() if sp == wanted), None
            )

    def add(self, namespace: str, name: str, port: int) -> int:
        """Map the service port to the first free target port and return it.

        An existing mapping for the same service port is returned unchanged.
        """
        wanted = (namespace, name, port)
        with self._lock:
            available: int | None = None
            for target in range(self.min_port, self.max_port + 1):
                sp = self._table.get(target)
                if sp is None:
                    if available is None:
                        available = target
                elif sp == wanted:
                    return target

            if available is None:
                raise PortMappingError("unable to find an available port")

            self._table[available] = wanted
            return available

    def set(self, namespace: str, name: str, from_port: int, to_port: int) -> None:
        """Map the service port to the given target port."""
        wanted = (namespace, name, from_port)
        with self._lock:
            _check_range(self.min_port, self.max_port, to_port)
            for target, sp in self._table.items():
                if target == to_port or sp == wanted:
                    raise PortMappingError(
                        f"port {sp[2]} is already mapped to port {target}"
                    )
            self._table[to_port] = wanted

    def remove(self, namespace: str, name: str, port: int) -> int | None:
        """Release the mapping of the service port and return its target port."""
        wanted = (namespace, name, port)
        with self._lock:
            target = next(
                (t for t, sp in self._table.items() if sp == wanted), None
            )
            if target is not None:
                del self._table[target]
            return target

    def mappings(self) -> dict[int, tuple[str, str, int]]:
        """Return a snapshot: target port -> (namespace, name, service port)."""
        with self._lock:
            return dict(self._table)


class MultiplexedPortMapping:
    """Maps service ports to target ports that are shared between services."""

    def __init__(self, min_port: int, max_port: int) -> None:
        self.min_port = min_port
        self.max_port = max_port
        self._lock = threading.Lock()
        self._table: dict[tuple[str, str], dict[int, int]] = {}

    def find(self, namespace: str, name: str, port: int) -> int | None:
        """Return the target port mapped to the given service port, or None."""
        with self._lock:
            mapping = self._table.get((namespace, name), {})
            return next(
                (target for target, source in mapping.items() if source == port), None
            )

    def add(self, namespace: str, name: str, port: int) -> int:
        """Map the service port to the first target port free for this service."""
        key = (namespace, name)
        with self._lock:
            mapping = self._table.get(key, {})
            for target, source in mapping.items():
                if source == port:
                    return target

            for target in range(self.min_port, self.max_port + 1):
                if target not in mapping:
                    mapping[target] = port
                    self._table[key] = mapping
                    return target

            raise PortMappingError("unable to find an available port")

    def set(self, namespace: str, name: str, from_port: int, to_port: int) -> None:
        """Map the service port to the given target port."""
        key = (namespace, name)
        with self._lock:
            _check_range(self.min_port, self.max_port, to_port)
            mapping = self._table.get(key, {})
            for target, source in mapping.items():
                if target == to_port or source == from_port:
                    raise PortMappingError(
                        f"port {source} is already mapped to port {target}"
                    )
            mapping[to_port] = from_port
            self._table[key] = mapping

    def remove(self, namespace: str, name: str, port: int) -> int | None:
        """Release the mapping of the service port and return its target port."""
        key = (namespace, name)
        with self._lock:
            mapping = self._table.get(key)
            if mapping is None:
                return None
            for target, source in mapping.items():
                if source == port:
                    del mapping[target]
                    if not mapping:
                        del self._table[key]
                    return target
            return None

    def mappings(self) -> dict[tuple[str, str], dict[int, int]]:
        """Return a snapshot: (namespace, name) -> {target port: service port}."""
        with self._lock:
            return {key: dict(mapping) for key, mapping in self._table.items()}