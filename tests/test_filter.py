from shadowmesh.k8s.filter import (
    ResourceFilter,
    ignore_label,
    ignore_namespaces,
    ignore_service,
    watch_namespaces,
)
from shadowmesh.k8s.resources import (
    SERVICE_TYPE_EXTERNAL_NAME,
    ObjectMeta,
    Pod,
    Service,
    ServiceSpec,
)


def _svc(namespace="", name="", labels=None):
    return Service(metadata=ObjectMeta(name=name, namespace=namespace, labels=labels or {}))


def test_new_applies_each_option_once():
    counters = {"first": 0, "second": 0}

    def first(target):
        counters["first"] += 1
        target.watched_namespaces.append("ns-a")

    def second(target):
        counters["second"] += 1
        target.ignored_namespaces.append("ns-b")

    f = ResourceFilter(first, second)

    assert counters == {"first": 1, "second": 1}
    assert f.watched_namespaces == ["ns-a"]
    assert f.ignored_namespaces == ["ns-b"]
    assert f.is_ignored(_svc(namespace="ns-a")) is False
    assert f.is_ignored(_svc(namespace="ns-b")) is True


def test_is_ignored_with_no_restriction():
    assert ResourceFilter().is_ignored(_svc(namespace="ns")) is False


def test_is_ignored_called_with_unexpected_type():
    assert ResourceFilter().is_ignored(1) is True


def test_is_ignored_with_ignored_namespaces():
    f = ResourceFilter()
    f.ignored_namespaces = ["ignored-ns"]

    assert f.is_ignored(_svc(namespace="ignored-ns")) is True
    assert f.is_ignored(_svc(namespace="ns")) is False


def test_is_ignored_with_watched_namespaces():
    f = ResourceFilter()
    f.watched_namespaces = ["watched-ns"]

    assert f.is_ignored(_svc(namespace="ns")) is True
    assert f.is_ignored(_svc(namespace="watched-ns")) is False


def test_is_ignored_with_watched_and_ignored_namespaces():
    f = ResourceFilter()
    f.watched_namespaces = ["ns-1", "ns-2"]
    f.ignored_namespaces = ["ns-2", "ns-3"]

    assert f.is_ignored(_svc(namespace="ns-1")) is False
    assert f.is_ignored(_svc(namespace="ns-2")) is True
    assert f.is_ignored(_svc(namespace="ns-3")) is True
    assert f.is_ignored(_svc(namespace="ns-4")) is True


def test_is_ignored_with_ignored_labels():
    f = ResourceFilter()
    f.ignored_labels = {"foo": "bar"}

    assert f.is_ignored(_svc(labels={"foo": "bar"})) is True
    assert f.is_ignored(_svc(labels={"bar": "baz"})) is False


def test_is_ignored_with_ignored_services():
    f = ResourceFilter()
    f.ignored_services = [("ns-1", "svc-1")]

    assert f.is_ignored(_svc(namespace="ns-1", name="svc-1")) is True
    assert f.is_ignored(_svc(namespace="ns-2", name="svc-1")) is False
    assert f.is_ignored(_svc(namespace="ns-1", name="svc-2")) is False
    assert f.is_ignored(Pod(metadata=ObjectMeta(namespace="ns-1", name="svc-1"))) is False


def test_is_ignored_ignores_external_name_services():
    svc = Service(
        metadata=ObjectMeta(namespace="ns-1", name="svc-1"),
        spec=ServiceSpec(type=SERVICE_TYPE_EXTERNAL_NAME),
    )
    assert ResourceFilter().is_ignored(svc) is True


def test_watch_namespaces():
    f = ResourceFilter()
    watch_namespaces("ns-1", "ns-2")(f)

    assert f.watched_namespaces == ["ns-1", "ns-2"]
    assert f.ignored_namespaces == []
    assert f.ignored_services == []
    assert f.ignored_labels == {}


def test_ignore_namespaces():
    f = ResourceFilter()
    ignore_namespaces("ns-1", "ns-2")(f)

    assert f.ignored_namespaces == ["ns-1", "ns-2"]
    assert f.watched_namespaces == []
    assert f.ignored_services == []
    assert f.ignored_labels == {}


def test_ignore_label():
    f = ResourceFilter()
    ignore_label("foo", "bar")(f)

    assert f.ignored_labels == {"foo": "bar"}
    assert f.ignored_namespaces == []
    assert f.watched_namespaces == []
    assert f.ignored_services == []


def test_ignore_service():
    f = ResourceFilter()
    ignore_service("ns-1", "svc-1")(f)

    assert f.ignored_services == [("ns-1", "svc-1")]
    assert f.ignored_namespaces == []
    assert f.watched_namespaces == []
    assert f.ignored_labels == {}


def test_options_passed_to_constructor():
    f = ResourceFilter(
        watch_namespaces("ns-1"),
        ignore_namespaces("kube-system"),
        ignore_service("default", "kubernetes"),
        ignore_label("app.kubernetes.io/part-of", "traefik-mesh"),
    )

    assert f.is_ignored(_svc(namespace="ns-1", name="svc")) is False
    assert f.is_ignored(_svc(namespace="kube-system")) is True
    assert (
        f.is_ignored(
            _svc(namespace="ns-1", labels={"app.kubernetes.io/part-of": "traefik-mesh"})
        )
        is True
    )