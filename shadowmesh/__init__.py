"""Shadow service helpers, port mapping and DNS resolution for a service mesh."""

__version__ = "0.1.0"