"""A UDP DNS server answering A queries with shadow service IPs."""

from __future__ import annotations

import logging
import socket
import threading

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.rcode
import dns.rdataclass
import dns.rdatatype
import dns.rrset

from shadowmesh.dns.resolver import ResolveError, ShadowServiceResolver

DNS_TTL = 60

_log = logging.getLogger(__name__)


class Server:
    """Answers A queries under the resolver domain; other zones are refused."""

    def __init__(self, port: int, resolver: ShadowServiceResolver, host: str = "") -> None:
        self.resolver = resolver
        self._zone = dns.name.from_text(resolver.domain)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._socket.bind((host, port))
        self._socket.settimeout(0.2)
        self.address: tuple[str, int] = self._socket.getsockname()
        self._shutdown_requested = threading.Event()
        self._loop_done = threading.Event()
        self._loop_done.set()

    def handle_query(self, wire: bytes) -> bytes:
        """Build the wire-format response to a wire-format query."""
        query = dns.message.from_wire(wire)
        response = dns.message.make_response(query)

        if not query.question or not query.question[0].name.is_subdomain(self._zone):
            response.set_rcode(dns.rcode.REFUSED)
            return response.to_wire()

        response.flags |= dns.flags.AA
        for question in query.question:
            if question.rdtype != dns.rdatatype.A:
                continue
            qname = question.name.to_text()
            try:
                ip = self.resolver.lookup_fqdn(qname)
            except ResolveError as err:
                _log.debug("Unable to resolve %r: %s", qname, err)
                continue
            try:
                rrset = dns.rrset.from_text(
                    question.name, DNS_TTL, dns.rdataclass.IN, dns.rdatatype.A, str(ip)
                )
            except dns.exception.DNSException as err:
                _log.error("Unable to create RR for %r: %s", qname, err)
                continue
            response.answer.append(rrset)

        return response.to_wire()

    def serve_forever(self) -> None:
        """Answer queries until shutdown() is called."""
        self._loop_done.clear()
        try:
            while not self._shutdown_requested.is_set():
                try:
                    wire, peer = self._socket.recvfrom(65535)
                except socket.timeout:
                    continue
                except OSError:
                    if self._shutdown_requested.is_set():
                        break
                    raise
                try:
                    reply = self.handle_query(wire)
                except dns.exception.DNSException as err:
                    _log.debug("Dropping malformed query from %s: %s", peer, err)
                    continue
                try:
                    self._socket.sendto(reply, peer)
                except OSError as err:
                    _log.error("Unable to write DNS response: %s", err)
        finally:
            self._loop_done.set()

    def shutdown(self) -> None:
        """Stop serving and release the socket."""
        self._shutdown_requested.set()
        self._loop_done.wait()
        self._socket.close()

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()