"""Mesh name resolution, the UDP DNS server and cluster DNS configuration."""