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


"""Shared fixtures: fast settings and an in-memory cluster with a simulated operator."""

from __future__ import annotations

import pytest

from sriov_harness.config import HarnessSettings, TimeoutSettings
from sriov_harness.constants import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    KIND_ATTACHMENT,
    KIND_NETWORK,
    KIND_NODE,
    KIND_NODE_STATE,
    KIND_POLICY,
    KIND_POOL,
    LABEL_HOSTNAME,
    SYNC_STATUS_IN_PROGRESS,
    SYNC_STATUS_SUCCEEDED,
)
from sriov_harness.memory import InMemoryResourceStore, simple
from sriov_harness.store import ResourceRef

OP_NS = "sriov-op"
TEST_NS = "sriov-tests"
WORKER_ROLE = "node-role.kubernetes.io/worker"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for var in ("SRIOV_DEVICES", "SRIOV_VF_NUM", "ECO_OCP_SRIOV_VF_NUM", "SRIOV_WORKER_LABEL",
                "ECO_OCP_SRIOV_WORKER_LABEL", "SRIOV_MCP_LABEL", "SRIOV_OPERATOR_NAMESPACE",
                "SRIOV_TEST_NAMESPACE", "KUBECONFIG"):
        monkeypatch.delenv(var, raising=False)


def fast_timeouts(**overrides) -> TimeoutSettings:
    values = dict(
        polling_interval=0.01,
        namespace_timeout=0.2,
        attachment_timeout=0.2,
        capacity_timeout=0.1,
        capacity_interval=0.01,
        policy_application_timeout=0.15,
        stable_interval=0.01,
        teardown_timeout=0.3,
        cleanup_timeout=0.3,
        reconcile_timeout=0.2,
    )
    values.update(overrides)
    return TimeoutSettings(**values)


@pytest.fixture
def settings() -> HarnessSettings:
    return HarnessSettings(
        operator_namespace=OP_NS,
        test_namespace=TEST_NS,
        timeouts=fast_timeouts(),
    )


def make_node(name: str, ready: str = CONDITION_TRUE, allocatable: dict | None = None,
              capacity: dict | None = None, worker: bool = True, **pressure: str) -> dict:
    """Worker node; pressure kwargs set extra condition statuses (MemoryPressure="True")."""
    labels = {LABEL_HOSTNAME: name}
    if worker:
        labels[WORKER_ROLE] = ""
    conds = [{"type": "Ready", "status": ready, "reason": "KubeletReady" if ready == CONDITION_TRUE else "KubeletNotReady"}]
    for cond_type in ("MemoryPressure", "DiskPressure"):
        conds.append({"type": cond_type, "status": pressure.get(cond_type, CONDITION_FALSE)})
    status = {"conditions": conds}
    if allocatable is not None:
        status["allocatable"] = allocatable
    if capacity is not None:
        status["capacity"] = capacity
    return simple(KIND_NODE, name, labels=labels, status=status)


def make_node_state(name: str, sync: str = SYNC_STATUS_SUCCEEDED, interfaces: list | None = None) -> dict:
    return simple(KIND_NODE_STATE, name, OP_NS, status={"syncStatus": sync, "interfaces": interfaces or []})


def make_pool(name: str = "worker", updated: bool = True, degraded: bool = False) -> dict:
    return simple(
        KIND_POOL, name,
        labels={"machineconfiguration.openshift.io/role": name},
        status={"conditions": [
            {"type": "Updated", "status": CONDITION_TRUE if updated else CONDITION_FALSE},
            {"type": "Degraded", "status": CONDITION_TRUE if degraded else CONDITION_FALSE},
        ]},
    )


def set_sync(store: InMemoryResourceStore, node: str, status: str) -> None:
    state = store.objects[(KIND_NODE_STATE, OP_NS, node)]
    state["status"]["syncStatus"] = status


class FakeOperator:
    """Emulates SR-IOV operator reconciliation on an in-memory store.

    - A network produces an attachment in its target namespace.
    - Deleting a network deletes that attachment (after ``attachment_linger`` reads).
    - A policy pinned to a node in ``broken_nodes`` leaves that node's state InProgress.
    - A policy pinned to a healthy node advertises VF capacity on it when ``advertise`` is set.
    """

    def __init__(self, store: InMemoryResourceStore, broken_nodes=(), advertise: bool = True,
                 attachment_linger: int = 0, generate_attachments: bool = True) -> None:
        self.store = store
        self.broken_nodes = set(broken_nodes)
        self.advertise = advertise
        self.attachment_linger = attachment_linger
        self.generate_attachments = generate_attachments
        store.on_create.append(self._created)
        store.on_delete.append(self._deleted)

    def _created(self, store, resource):
        spec = resource.get("spec") or {}
        if resource["kind"] == KIND_POLICY:
            node = (spec.get("nodeSelector") or {}).get(LABEL_HOSTNAME)
            if node is None:
                return
            if node in self.broken_nodes:
                set_sync(store, node, SYNC_STATUS_IN_PROGRESS)
            elif self.advertise:
                obj = store.objects[(KIND_NODE, None, node)]
                obj["status"]["allocatable"] = {f"openshift.io/{spec['resourceName']}": str(spec["numVfs"])}
        elif resource["kind"] == KIND_NETWORK and self.generate_attachments:
            ns = spec.get("networkNamespace") or OP_NS
            store.add(simple(KIND_ATTACHMENT, resource["metadata"]["name"], ns))

    def _deleted(self, store, resource):
        spec = resource.get("spec") or {}
        if resource["kind"] == KIND_POLICY:
            node = (spec.get("nodeSelector") or {}).get(LABEL_HOSTNAME)
            if (KIND_NODE_STATE, OP_NS, node) in store.objects:
                set_sync(store, node, SYNC_STATUS_SUCCEEDED)
        elif resource["kind"] == KIND_NETWORK:
            ns = spec.get("networkNamespace") or OP_NS
            name = resource["metadata"]["name"]
            if (KIND_ATTACHMENT, ns, name) in store.objects:
                if self.attachment_linger:
                    store.linger[ResourceRef(KIND_ATTACHMENT, name, ns)] = self.attachment_linger
                store.delete(KIND_ATTACHMENT, name, ns)


@pytest.fixture
def cluster() -> InMemoryResourceStore:
    """Three healthy workers with Succeeded node states and an updated worker pool."""
    store = InMemoryResourceStore()
    for name in ("worker-1", "worker-2", "worker-3"):
        store.add(make_node(name))
        store.add(make_node_state(name))
    store.add(make_node("master-0", worker=False))
    store.add(make_pool())
    return store
