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

from conftest import OP_NS, TEST_NS, make_node, make_pool, set_sync

from sriov_harness.constants import (
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    KIND_ATTACHMENT,
    KIND_NODE,
    KIND_NODE_STATE,
    KIND_POOL,
    SYNC_STATUS_IN_PROGRESS,
)
from sriov_harness.errors import PredicateError, ResourceErrorKind
from sriov_harness.memory import InMemoryResourceStore, simple
from sriov_harness.predicates import (
    all_of,
    attachment_absent,
    attachment_exists,
    capacity_available,
    node_fleet_ready,
    node_unstable_reason,
    policy_sync_converged,
    pool_update_converged,
    sriov_stable,
)


def test_healthy_fleet_is_ready(cluster, settings):
    assert node_fleet_ready(cluster, settings)()


def test_one_node_under_memory_pressure_fails_whole_fleet(cluster, settings):
    cluster.add(make_node("worker-2", MemoryPressure=CONDITION_TRUE))
    assert not node_fleet_ready(cluster, settings)()


def test_non_worker_nodes_are_ignored(cluster, settings):
    cluster.add(make_node("master-0", ready=CONDITION_UNKNOWN, worker=False))
    assert node_fleet_ready(cluster, settings)()


def test_empty_fleet_is_not_ready(settings):
    assert not node_fleet_ready(InMemoryResourceStore(), settings)()


def test_transient_list_error_is_not_ready(cluster, settings):
    cluster.fail("list", KIND_NODE, ResourceErrorKind.TRANSIENT)
    check = node_fleet_ready(cluster, settings)
    assert not check()
    assert check()


@pytest.mark.parametrize("node, expected", [
    (make_node("n", ready=CONDITION_UNKNOWN), "Unknown"),
    (make_node("n", ready="False"), "not Ready"),
    (make_node("n", DiskPressure=CONDITION_TRUE), "DiskPressure=True"),
])
def test_unstable_reasons(node, expected):
    assert expected in node_unstable_reason(node)


def test_reboot_reason_marks_node_unstable():
    node = make_node("n")
    node["status"]["conditions"].append({"type": "KernelDeadlock", "status": "False", "reason": "Rebooting"})
    assert node_unstable_reason(node) is not None


def test_healthy_node_has_no_reason():
    assert node_unstable_reason(make_node("n")) is None


def test_policy_sync_requires_all_succeeded(cluster, settings):
    check = policy_sync_converged(cluster, settings)
    assert check()
    set_sync(cluster, "worker-3", SYNC_STATUS_IN_PROGRESS)
    assert not check()


def test_policy_sync_with_no_node_states_is_not_converged(settings):
    store = InMemoryResourceStore()
    store.add(make_node("worker-1"))
    assert not policy_sync_converged(store, settings)()


def test_pool_degraded_or_not_updated(cluster, settings):
    check = pool_update_converged(cluster, settings)
    assert check()
    cluster.add(make_pool(degraded=True))
    assert not check()
    cluster.add(make_pool(updated=False))
    assert not check()


def test_pool_filter_skips_other_pools(cluster, settings):
    cluster.add(make_pool("master", updated=False))
    assert pool_update_converged(cluster, settings)()
    assert not pool_update_converged(cluster, settings, label="")()


def test_missing_pool_kind_skips_pool_check(cluster, settings):
    cluster.unregistered.add(KIND_POOL)
    assert pool_update_converged(cluster, settings)()
    assert sriov_stable(cluster, settings)()


def test_capacity_needs_allocatable_not_just_capacity(cluster, settings):
    key = settings.resource_key("e810c")
    cluster.add(make_node("worker-1", capacity={key: "4"}, allocatable={key: "0"}))
    check = capacity_available(cluster, settings, "e810c")
    assert not check()
    cluster.add(make_node("worker-2", allocatable={key: "2"}))
    assert check()


def test_capacity_without_worker_nodes_is_terminal(settings):
    with pytest.raises(PredicateError):
        capacity_available(InMemoryResourceStore(), settings, "e810c")()


def test_attachment_presence(cluster):
    exists = attachment_exists(cluster, "net1", TEST_NS)
    absent = attachment_absent(cluster, "net1", TEST_NS)
    assert not exists() and absent()
    cluster.add(simple(KIND_ATTACHMENT, "net1", TEST_NS))
    assert exists() and not absent()


def test_attachment_lookup_error_is_neither_present_nor_absent(cluster):
    cluster.sticky_failures[("get", KIND_ATTACHMENT)] = ResourceErrorKind.TRANSIENT
    assert not attachment_exists(cluster, "net1", TEST_NS)()
    assert not attachment_absent(cluster, "net1", TEST_NS)()


def test_all_of_short_circuits():
    calls = []

    def no():
        calls.append("no")
        return False

    def yes():
        calls.append("yes")
        return True

    assert not all_of(no, yes)()
    assert calls == ["no"]
    assert all_of(yes, yes)()


def test_predicates_do_not_write(cluster, settings):
    sriov_stable(cluster, settings)()
    capacity_available(cluster, settings, "e810c")()
    assert {op for op, *_ in cluster.calls} == {"list"}
    assert cluster.objects[(KIND_NODE_STATE, OP_NS, "worker-1")]["status"]["syncStatus"] == "Succeeded"
