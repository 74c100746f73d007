import pytest

from shadowmesh.controller.handler import (
    CONFIG_REFRESH_KEY,
    EnqueueWorkHandler,
    WorkQueue,
)
from shadowmesh.k8s.resources import Endpoints, ObjectMeta, Pod, Service


def make_handler():
    queue = WorkQueue()
    return queue, EnqueueWorkHandler(queue)


def test_on_add_enqueues_refresh_key_for_pod():
    queue, handler = make_handler()
    handler.on_add(Pod())
    assert len(queue) == 1
    assert queue.get() == CONFIG_REFRESH_KEY


def test_on_delete_enqueues_refresh_key_for_pod():
    queue, handler = make_handler()
    handler.on_delete(Pod())
    assert len(queue) == 1
    assert queue.get() == "refresh"


@pytest.mark.parametrize(
    "old_version, new_version, expected_len",
    [("foo", "foo", 0), ("foo", "bar", 1)],
)
def test_on_update(old_version, new_version, expected_len):
    queue, handler = make_handler()
    handler.on_update(
        Service(metadata=ObjectMeta(resource_version=old_version)),
        Service(metadata=ObjectMeta(resource_version=new_version)),
    )
    assert len(queue) == expected_len


@pytest.mark.parametrize(
    "obj, expected_key",
    [
        (Endpoints(), CONFIG_REFRESH_KEY),
        (Service(metadata=ObjectMeta(name="foo", namespace="bar")), "bar/foo"),
        (Service(metadata=ObjectMeta(name="foo")), "foo"),
    ],
)
def test_enqueue_work_keys(obj, expected_key):
    queue, handler = make_handler()
    handler.on_add(obj)
    assert len(queue) == 1
    assert queue.get() == expected_key


def test_queue_deduplicates_waiting_keys():
    queue = WorkQueue()
    queue.add("a")
    queue.add("a")
    queue.add("b")
    assert len(queue) == 2
    assert queue.get() == "a"
    assert queue.get() == "b"


def test_key_added_while_processing_is_requeued_on_done():
    queue = WorkQueue()
    queue.add("a")
    assert queue.get() == "a"
    queue.add("a")
    assert len(queue) == 0
    queue.done("a")
    assert len(queue) == 1
    assert queue.get() == "a"