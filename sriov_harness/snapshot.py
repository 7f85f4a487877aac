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


"""Cluster state snapshots and diffs.

A snapshot records which policies and networks exist in the operator
namespace and the sync status of every SR-IOV node state. Two complete
snapshots can be compared to detect drift across a disruptive operation
(operator restart, node reboot).
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

from sriov_harness import logger
from sriov_harness.config import HarnessSettings
from sriov_harness.constants import KIND_NETWORK, KIND_NODE_STATE, KIND_POLICY, SYNC_STATUS_SUCCEEDED
from sriov_harness.errors import StateDriftError
from sriov_harness.polling import poll_until
from sriov_harness.predicates import policy_sync_converged
from sriov_harness.store import ResourceStore
from sriov_harness.utils import resource_name


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClusterSnapshot:
    """Immutable point-in-time view of SR-IOV configuration."""

    policy_names: frozenset[str] = frozenset()
    network_names: frozenset[str] = frozenset()
    node_sync_status: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    captured_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "policy_names", frozenset(self.policy_names))
        object.__setattr__(self, "network_names", frozenset(self.network_names))
        object.__setattr__(self, "node_sync_status", MappingProxyType(dict(self.node_sync_status)))

    def to_dict(self) -> dict[str, Any]:
        """Plain, deterministic representation suitable for YAML or JSON."""
        return {
            "captured_at": self.captured_at.isoformat(),
            "policies": sorted(self.policy_names),
            "networks": sorted(self.network_names),
            "node_states": dict(sorted(self.node_sync_status.items())),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ClusterSnapshot:
        captured_at = data.get("captured_at")
        if isinstance(captured_at, str):
            captured_at = datetime.fromisoformat(captured_at)
        return cls(
            policy_names=frozenset(data.get("policies") or ()),
            network_names=frozenset(data.get("networks") or ()),
            node_sync_status={str(k): str(v) for k, v in (data.get("node_states") or {}).items()},
            captured_at=captured_at or _now(),
        )


def capture(store: ResourceStore, namespace: str) -> ClusterSnapshot:
    """Read policies, networks and node states from *namespace*.

    Any list failure propagates; a partial snapshot is never returned.
    """
    policies = frozenset(resource_name(p) for p in store.list(KIND_POLICY, namespace=namespace))
    networks = frozenset(resource_name(n) for n in store.list(KIND_NETWORK, namespace=namespace))
    node_states = {
        resource_name(s): (s.get("status") or {}).get("syncStatus", "")
        for s in store.list(KIND_NODE_STATE, namespace=namespace)
    }
    snapshot = ClusterSnapshot(policies, networks, node_states)
    logger.info("Captured SR-IOV state: %d policies, %d networks, %d node states",
                len(policies), len(networks), len(node_states))
    return snapshot


# ============================================================================
# Diff
# ============================================================================


class ChangeAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


_CATEGORY_ORDER = {"policy": 0, "network": 1, "node": 2}
_ACTION_ORDER = {ChangeAction.REMOVED: 0, ChangeAction.ADDED: 1, ChangeAction.CHANGED: 2}


@dataclass(frozen=True)
class Change:
    """One difference between two snapshots.

    Attributes:
        category: ``policy``, ``network`` or ``node``.
        action: What happened to the key.
        key: Policy, network or node name.
        before: Previous node status (node changes only).
        after: New node status (node changes only).
    """

    category: str
    action: ChangeAction
    key: str
    before: str | None = None
    after: str | None = None

    def __str__(self) -> str:
        if self.category == "node":
            if self.action is ChangeAction.CHANGED:
                return f"Node {self.key} status changed: {self.before} -> {self.after}"
            return f"Node state {self.action.value}: {self.key}"
        return f"{self.category.capitalize()} {self.action.value}: {self.key}"

    def sort_key(self) -> tuple[int, str, int]:
        return _CATEGORY_ORDER.get(self.category, len(_CATEGORY_ORDER)), self.key, _ACTION_ORDER[self.action]


def _set_changes(category: str, before: frozenset[str], after: frozenset[str]) -> list[Change]:
    return [Change(category, ChangeAction.REMOVED, k) for k in before - after] + \
           [Change(category, ChangeAction.ADDED, k) for k in after - before]


def diff(before: ClusterSnapshot, after: ClusterSnapshot) -> list[Change]:
    """Compare two complete snapshots.

    Returns:
        Changes sorted by category (policies, networks, nodes), then key.
        Identical snapshots yield an empty list.
    """
    changes = _set_changes("policy", before.policy_names, after.policy_names)
    changes += _set_changes("network", before.network_names, after.network_names)
    for node, status in before.node_sync_status.items():
        if node not in after.node_sync_status:
            changes.append(Change("node", ChangeAction.REMOVED, node, before=status))
        elif after.node_sync_status[node] != status:
            changes.append(Change("node", ChangeAction.CHANGED, node, status, after.node_sync_status[node]))
    for node, status in after.node_sync_status.items():
        if node not in before.node_sync_status:
            changes.append(Change("node", ChangeAction.ADDED, node, after=status))
    return sorted(changes, key=Change.sort_key)


# ============================================================================
# Reconvergence
# ============================================================================


def wait_node_states_reconciled(store: ResourceStore, settings: HarnessSettings,
                                cancel: threading.Event | None = None) -> None:
    """Wait until every SR-IOV node state reports Succeeded.

    Raises:
        PollTimeoutError: If node states do not settle within ``reconcile_timeout``.
    """
    timeouts = settings.timeouts
    poll_until(
        policy_sync_converged(store, settings),
        timeouts.stable_interval,
        timeouts.reconcile_timeout,
        cancel=cancel,
        description="SR-IOV node states to reconcile",
    )
    logger.info("All SR-IOV node states reconciled")


def _tolerated(change: Change) -> bool:
    return (change.category == "node" and change.action is ChangeAction.CHANGED
            and change.after == SYNC_STATUS_SUCCEEDED)


def verify_reconvergence(before: ClusterSnapshot, store: ResourceStore, settings: HarnessSettings,
                         cancel: threading.Event | None = None) -> list[Change]:
    """Wait for reconciliation, capture again and compare with *before*.

    A node returning to Succeeded is expected; anything else is drift.

    Returns:
        All changes, including the tolerated ones.

    Raises:
        StateDriftError: If any untolerated change is found.
        PollTimeoutError: If node states never settle.
    """
    wait_node_states_reconciled(store, settings, cancel)
    after = capture(store, settings.operator_namespace)
    changes = diff(before, after)
    drift = [c for c in changes if not _tolerated(c)]
    if drift:
        raise StateDriftError(drift)
    for change in changes:
        logger.info("Expected state change: %s", change)
    return changes
