# shadowmesh

Building blocks for a service mesh that runs on Kubernetes. Each user
service has a *shadow service* whose ports point at ports opened on the
mesh proxies, and a small DNS server resolves names such as
`whoami.default.traefik.mesh.` to the ClusterIP of that shadow service.

The package is library code; it has no command-line entry point.

## What is in it

- `shadowmesh.portmapping`: allocation of proxy ports for service ports
  within a fixed range.
  - `PortMapping` gives each service port a proxy port of its own (for
    TCP and UDP traffic).
  - `MultiplexedPortMapping` lets ports of different services share one
    proxy port (for HTTP traffic).
  - Both have `find`, `add`, `set`, `remove` and `mappings`. `find` and
    `remove` return `None` when nothing is mapped. `PortMappingError` is
    raised when the range has no free port, or when a port given to `set`
    is out of range or already taken.
- `shadowmesh.k8s.resources`: plain data classes (`ObjectMeta`, `Service`,
  `ServiceSpec`, `ServicePort`, `Pod`, `Endpoints`, `Deployment`,
  `Container`, `Volume`, `ConfigMapVolumeSource`, `ConfigMap`), the label
  sets `shadow_service_labels()` and `proxy_labels()`, `matches_labels`,
  and `ServiceStore`, a thread-safe in-memory service store whose `get` and
  `delete` raise `NotFoundError`.
- `shadowmesh.k8s.filter`: `ResourceFilter`, built from the options
  `watch_namespaces`, `ignore_namespaces`, `ignore_label` and
  `ignore_service`; `is_ignored` also ignores objects without metadata and
  `ExternalName` services.
- `shadowmesh.k8s.smi`: `check_smi_version(server_groups, acl_enabled)`
  takes the `ServerGroup` entries a server offers and raises
  `SMIVersionError` unless the split and specs groups (and the access group
  when ACL is enabled) are served at the supported versions.
- `shadowmesh.controller.shadow`: `get_shadow_service_name`,
  `get_removed_or_updated_ports` and `build_unresolvable_port`.
- `shadowmesh.controller.handler`: `WorkQueue`, a de-duplicating FIFO of
  work keys, and `EnqueueWorkHandler`, which turns add, update and delete
  events into keys: `namespace/name` for services, `CONFIG_REFRESH_KEY`
  for anything else, and nothing for resync updates that keep the resource
  version.
- `shadowmesh.dns.resolver`: `ShadowServiceResolver`.
- `shadowmesh.dns.server`: `Server`, a UDP DNS server.
- `shadowmesh.dns.client`: `DNSClient`, which detects, patches and restores
  the cluster's CoreDNS or KubeDNS configuration.

## Port mapping

```python
from shadowmesh.portmapping import MultiplexedPortMapping, PortMapping

tcp = PortMapping(10000, 10200)
tcp.add("my-ns", "my-app", 9090)          # 10000
tcp.add("my-ns", "my-app", 9090)          # 10000 again, already mapped
tcp.find("my-ns", "my-app", 9090)         # 10000
tcp.remove("my-ns", "my-app", 9090)       # 10000, now free

http = MultiplexedPortMapping(5000, 5005)
http.add("my-ns", "my-app", 9090)         # 5000
http.add("my-ns", "my-app2", 9090)        # 5000, shared across services
```

## Shadow service names

```python
from shadowmesh.controller.shadow import get_shadow_service_name

get_shadow_service_name("default", "whoami")
# 'shadow-svc-247b8d4abd40affb14cc82edca56b2c7'
```

## Resolving mesh names

`ShadowServiceResolver(domain, namespace, service_lister)` reads a name as
`<name>.<namespace>.<domain>`. `lookup_fqdn` returns the ClusterIP of the
matching shadow service as an `ipaddress` object. It raises `ResolveError`
when the name is outside the domain or malformed, when the shadow service
is missing, when its labels name a different service, or when its
ClusterIP is not a valid address.

`Server(port, resolver, host="")` binds a UDP socket (port `0` picks a
free one; the bound address is in `server.address`). `serve_forever()`
answers queries until `shutdown()` is called; the server is also a context
manager. Queries for names under the resolver's domain get an
authoritative answer with A records (TTL 60) for the names that resolve,
and an empty answer for the rest; queries outside the domain are refused.
`handle_query(wire)` builds the wire-format response for a single query.

## Cluster DNS configuration

`DNSClient(api, retry_interval=10.0, max_retries=12)` works through an
object that implements the `ClusterAPI` protocol: getting and updating
deployments, getting, creating and updating config maps, and getting
services, with getters raising `NotFoundError` for missing resources.

- `check_dns_provider()` returns `Provider.COREDNS` for a CoreDNS of at
  least 1.3 and below 1.9, or `Provider.KUBEDNS`; it raises
  `DNSConfigError` for an unsupported CoreDNS version or when neither is
  deployed.
- `configure_coredns(namespace, name, port)` and
  `configure_kubedns(namespace, name, port)` add a stub domain for
  `traefik.mesh` pointing at the ClusterIP of the given DNS service
  (retried while the service is missing or has no ClusterIP), then restart
  the DNS pods by setting a fresh annotation on the deployment template.
  CoreDNS is left alone when already patched.
- `restore_coredns()` and `restore_kubedns()` remove the stub domain again.

The CoreDNS block is delimited by `#### Begin Traefik Mesh Block` and
`#### End Traefik Mesh Block` and uses `proxy` for CoreDNS older than 1.4
and `forward` otherwise. It goes into the `traefik.mesh.server` key of a
`coredns-custom` ConfigMap when the deployment mounts one, and into the
`Corefile` otherwise. The helpers `get_stub_domain`, `add_stub_domain`,
`remove_stub_domain`, `get_coredns_version` and `CoreDNSVersion.parse`
are available on their own.

## What it does not do

The package does not talk to a Kubernetes API server: there is no cluster
client, no informers and no watch loop. `ServiceStore` and the data
classes stand in for cluster state, and `DNSClient` needs a `ClusterAPI`
implementation supplied by the caller. There is also no controller that
creates, updates or deletes shadow services, and no proxy configuration
is built; the package gives the pieces such a controller would use.