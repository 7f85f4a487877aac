# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


import pytest

from conftest import OP_NS, TEST_NS, FakeOperator

from sriov_harness.constants import KIND_ATTACHMENT, KIND_NETWORK, KIND_POLICY
from sriov_harness.errors import ResourceErrorKind, ResourceStoreError, TeardownError
from sriov_harness.memory import InMemoryResourceStore, simple
from sriov_harness.store import ResourceRef
from sriov_harness.teardown import Teardown


def network(name, target_ns=TEST_NS):
    return simple(KIND_NETWORK, name, OP_NS, spec={"resourceName": "e810c", "networkNamespace": target_ns})


def test_absent_resource_is_success_without_delete(settings):
    store = InMemoryResourceStore()
    assert Teardown(store, settings).remove_policy("gone") is False
    assert store.deletes() == []


def test_double_teardown_issues_a_single_delete(settings):
    store = InMemoryResourceStore()
    store.add(simple(KIND_POLICY, "e810c", OP_NS))
    teardown = Teardown(store, settings)
    assert teardown.remove_policy("e810c") is True
    assert teardown.remove_policy("e810c") is False
    assert store.deletes(KIND_POLICY) == [(KIND_POLICY, OP_NS, "e810c")]


def test_waits_for_lingering_delete(settings):
    store = InMemoryResourceStore()
    ref = ResourceRef(KIND_POLICY, "e810c", OP_NS)
    store.add(simple(KIND_POLICY, "e810c", OP_NS))
    store.linger[ref] = 3
    Teardown(store, settings).remove(ref)
    assert not store.exists(ref)
    assert [op for op, *_ in store.calls if op.endswith("delete")] == ["delete"]


def test_stuck_resource_gets_exactly_one_forced_delete(settings):
    store = InMemoryResourceStore()
    ref = ResourceRef(KIND_POLICY, "e810c", OP_NS)
    store.add(simple(KIND_POLICY, "e810c", OP_NS))
    store.linger[ref] = 10_000
    Teardown(store, settings).remove(ref)
    assert not store.exists(ref)
    assert [op for op, *_ in store.calls if op.endswith("delete")] == ["delete", "force-delete"]


def test_resource_surviving_forced_delete_is_surfaced(settings):
    store = InMemoryResourceStore()
    ref = ResourceRef(KIND_POLICY, "e810c", OP_NS)
    store.add(simple(KIND_POLICY, "e810c", OP_NS))
    store.linger[ref] = 10_000
    store.on_delete.append(lambda s, res: s.add(res))  # finalizer re-creates it
    with pytest.raises(TeardownError):
        Teardown(store, settings).remove(ref)


def test_refused_forced_delete_is_a_teardown_error(settings):
    store = InMemoryResourceStore()
    ref = ResourceRef(KIND_POLICY, "e810c", OP_NS)
    store.add(simple(KIND_POLICY, "e810c", OP_NS))
    store.linger[ref] = 10_000
    original = store.delete

    def delete(kind, name, namespace=None, *, force=False):
        if force:
            store.fail("delete", kind, ResourceErrorKind.TERMINAL)
        original(kind, name, namespace, force=force)

    store.delete = delete
    with pytest.raises(TeardownError):
        Teardown(store, settings).remove(ref)


def test_delete_racing_with_removal_counts_as_success(settings):
    store = InMemoryResourceStore()
    ref = ResourceRef(KIND_POLICY, "e810c", OP_NS)
    store.add(simple(KIND_POLICY, "e810c", OP_NS))

    def delete(kind, name, namespace=None, *, force=False):
        store.objects.pop((kind, namespace, name))
        raise ResourceStoreError(ResourceErrorKind.NOT_FOUND, f"{kind} {name} not found")

    store.delete = delete
    assert Teardown(store, settings).remove(ref) is True
    assert not store.exists(ref)


def test_network_teardown_waits_for_attachment_in_other_namespace(settings):
    store = InMemoryResourceStore()
    FakeOperator(store, attachment_linger=3)
    store.create(network("net1"))
    assert store.exists(ResourceRef(KIND_ATTACHMENT, "net1", TEST_NS))

    assert Teardown(store, settings).remove_network("net1") is True
    assert not store.exists(ResourceRef(KIND_NETWORK, "net1", OP_NS))
    assert not store.exists(ResourceRef(KIND_ATTACHMENT, "net1", TEST_NS))
    assert not any(op == "force-delete" for op, *_ in store.calls)


def test_stuck_attachment_gets_forced_delete(settings):
    store = InMemoryResourceStore()
    FakeOperator(store, attachment_linger=10_000)
    store.create(network("net1"))
    Teardown(store, settings).remove_network("net1")
    assert not store.exists(ResourceRef(KIND_ATTACHMENT, "net1", TEST_NS))
    assert ("force-delete", KIND_ATTACHMENT, TEST_NS, "net1") in store.calls


def test_network_in_operator_namespace_skips_attachment_wait(settings):
    store = InMemoryResourceStore()
    store.add(network("net1", target_ns=OP_NS))
    Teardown(store, settings).remove_network("net1")
    assert not any(kind == KIND_ATTACHMENT for _, kind, _, _ in store.calls)


def test_missing_attachment_skips_wait(settings):
    store = InMemoryResourceStore()
    store.add(network("net1"))
    Teardown(store, settings).remove_network("net1")
    attachment_calls = [c for c in store.calls if c[1] == KIND_ATTACHMENT]
    assert attachment_calls == [("get", KIND_ATTACHMENT, TEST_NS, "net1")]


def test_remove_missing_network_is_noop(settings):
    store = InMemoryResourceStore()
    assert Teardown(store, settings).remove_network("nope") is False
    assert store.deletes() == []


def test_clean_networks_by_target_namespace(settings):
    store = InMemoryResourceStore()
    FakeOperator(store)
    store.create(network("a", "ns-1"))
    store.create(network("b", "ns-1"))
    store.create(network("c", "ns-2"))
    assert Teardown(store, settings).clean_networks_by_target_namespace("ns-1") == 2
    assert store.exists(ResourceRef(KIND_NETWORK, "c", OP_NS))
    assert not store.exists(ResourceRef(KIND_ATTACHMENT, "a", "ns-1"))
    assert store.exists(ResourceRef(KIND_ATTACHMENT, "c", "ns-2"))
