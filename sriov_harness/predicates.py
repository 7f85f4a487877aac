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


"""Readiness predicates over cluster state.

Each factory returns a zero-argument callable suitable for poll_until. A
predicate returns False for anything that may still change (including
transient store errors) and raises PredicateError only when the target
state is structurally unreachable. Predicates never mutate the cluster.
"""

from __future__ import annotations

from collections.abc import Mapping

from sriov_harness import logger
from sriov_harness.config import HarnessSettings
from sriov_harness.constants import (
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    KIND_ATTACHMENT,
    KIND_NODE,
    KIND_NODE_STATE,
    KIND_POLICY,
    KIND_POOL,
    NODE_CONDITION_DISK_PRESSURE,
    NODE_CONDITION_MEMORY_PRESSURE,
    NODE_CONDITION_READY,
    NODE_UNSTABLE_REASONS,
    POOL_CONDITION_DEGRADED,
    POOL_CONDITION_UPDATED,
    SYNC_STATUS_SUCCEEDED,
)
from sriov_harness.errors import PredicateError, ResourceErrorKind, ResourceStoreError
from sriov_harness.polling import Predicate
from sriov_harness.store import ResourceRef, ResourceStore
from sriov_harness.utils import conditions, matches_selector, parse_quantity
from sriov_harness.utils import resource_name as name_of


def all_of(*predicates: Predicate) -> Predicate:
    """Combine predicates; evaluation stops at the first one that is not satisfied."""

    def _all() -> bool:
        return all(predicate() for predicate in predicates)

    return _all


# ============================================================================
# Nodes
# ============================================================================

def node_unstable_reason(node: Mapping) -> str | None:
    """Return why a node is unfit for provisioning, or None if it is healthy."""
    ready = False
    for cond in conditions(node):
        ctype, status, reason = cond.get("type"), cond.get("status"), cond.get("reason") or ""
        if ctype == NODE_CONDITION_READY:
            if status == CONDITION_TRUE:
                ready = True
            elif status == CONDITION_UNKNOWN:
                return "Ready condition is Unknown"
        if ctype in (NODE_CONDITION_MEMORY_PRESSURE, NODE_CONDITION_DISK_PRESSURE) and status == CONDITION_TRUE:
            return f"{ctype}=True"
        if any(marker in reason for marker in NODE_UNSTABLE_REASONS):
            return f"{ctype} reason {reason}"
    if not ready:
        return "not Ready"
    return None


def node_fleet_ready(store: ResourceStore, settings: HarnessSettings) -> Predicate:
    """Every worker node is Ready and none is under pressure or rebooting."""

    def _ready() -> bool:
        try:
            nodes = store.list(KIND_NODE, selector=settings.worker_label)
        except ResourceStoreError as err:
            logger.debug("TEMPORARY ERROR: could not list worker nodes: %s", err)
            return False
        if not nodes:
            logger.debug("WAITING: no nodes match worker label %r", settings.worker_label)
            return False
        healthy = True
        for node in nodes:
            reason = node_unstable_reason(node)
            if reason is not None:
                logger.debug("WAITING: worker node %r is unstable (%s)", name_of(node), reason)
                healthy = False
        return healthy

    return _ready


# ============================================================================
# Operator sync status and machine config pools
# ============================================================================

def policy_sync_converged(store: ResourceStore, settings: HarnessSettings) -> Predicate:
    """Every SR-IOV node state reports syncStatus Succeeded (and at least one exists)."""

    def _converged() -> bool:
        try:
            states = store.list(KIND_NODE_STATE, namespace=settings.operator_namespace)
        except ResourceStoreError as err:
            logger.debug("TEMPORARY ERROR: could not list SR-IOV node states: %s", err)
            return False
        if not states:
            logger.debug("WAITING: no SR-IOV node states yet, operator still initializing")
            return False
        synced = True
        for state in states:
            status = (state.get("status") or {}).get("syncStatus", "")
            if status != SYNC_STATUS_SUCCEEDED:
                logger.debug("WAITING: SR-IOV node %r not yet synced (status: %r)", name_of(state), status)
                synced = False
        return synced

    return _converged


def pool_update_converged(store: ResourceStore, settings: HarnessSettings, label: str | None = None) -> Predicate:
    """Matching machine config pools are Updated and not Degraded.

    Args:
        store: Resource Store to read from.
        settings: Harness settings; the default filter is ``mcp_label``.
        label: ``key=value`` pool filter; None uses the configured label, empty matches all.
    """
    selector = settings.mcp_label if label is None else label

    def _converged() -> bool:
        try:
            pools = store.list(KIND_POOL)
        except ResourceStoreError as err:
            if err.kind is ResourceErrorKind.KIND_NOT_REGISTERED:
                logger.debug("INFO: MachineConfigPool kind unavailable, relying on node sync status")
                return True
            logger.debug("TEMPORARY ERROR: could not list MachineConfigPools: %s", err)
            return False
        updated_all = True
        for pool in pools:
            if not matches_selector((pool.get("metadata") or {}).get("labels"), selector):
                continue
            updated = degraded = False
            for cond in conditions(pool):
                if cond.get("status") != CONDITION_TRUE:
                    continue
                if cond.get("type") == POOL_CONDITION_UPDATED:
                    updated = True
                elif cond.get("type") == POOL_CONDITION_DEGRADED:
                    degraded = True
            if degraded:
                logger.debug("WAITING: MachineConfigPool %r is degraded", name_of(pool))
                updated_all = False
            elif not updated:
                logger.debug("WAITING: MachineConfigPool %r not yet updated", name_of(pool))
                updated_all = False
        return updated_all

    return _converged


def sriov_stable(store: ResourceStore, settings: HarnessSettings) -> Predicate:
    """Policy sync, pool update, and worker fleet health all hold."""
    return all_of(
        policy_sync_converged(store, settings),
        pool_update_converged(store, settings),
        node_fleet_ready(store, settings),
    )


# ============================================================================
# Capacity
# ============================================================================

def capacity_available(store: ResourceStore, settings: HarnessSettings, resource_name: str) -> Predicate:
    """Some worker node advertises allocatable capacity for the device resource.

    Raises:
        PredicateError: (when evaluated) if the cluster has no worker nodes at all.
    """
    key = settings.resource_key(resource_name)

    def _available() -> bool:
        try:
            nodes = store.list(KIND_NODE, selector=settings.worker_label)
        except ResourceStoreError as err:
            logger.debug("TEMPORARY ERROR: could not list worker nodes: %s", err)
            return False
        if not nodes:
            raise PredicateError(f"no worker nodes match {settings.worker_label!r}")
        for node in nodes:
            status = node.get("status") or {}
            allocatable = status.get("allocatable") or {}
            if key in allocatable and parse_quantity(allocatable[key]) > 0:
                logger.debug("OK: %s allocatable on node %r: %s", key, name_of(node), allocatable[key])
                return True
            if key in (status.get("capacity") or {}):
                logger.debug("VF resource %s present but not allocatable on node %r", key, name_of(node))
        return False

    return _available


# ============================================================================
# Existence
# ============================================================================

def _lookup(store: ResourceStore, ref: ResourceRef) -> bool | None:
    """Return True if present, False if NotFound, None if the store is unreachable."""
    try:
        store.get(ref.kind, ref.name, ref.namespace)
    except ResourceStoreError as err:
        if err.not_found:
            return False
        logger.debug("TEMPORARY ERROR: could not get %s: %s", ref, err)
        return None
    return True


def resource_exists(store: ResourceStore, ref: ResourceRef) -> Predicate:
    return lambda: _lookup(store, ref) is True


def resource_absent(store: ResourceStore, ref: ResourceRef) -> Predicate:
    return lambda: _lookup(store, ref) is False


def attachment_exists(store: ResourceStore, name: str, namespace: str) -> Predicate:
    return resource_exists(store, ResourceRef(KIND_ATTACHMENT, name, namespace))


def attachment_absent(store: ResourceStore, name: str, namespace: str) -> Predicate:
    return resource_absent(store, ResourceRef(KIND_ATTACHMENT, name, namespace))


def policy_exists(store: ResourceStore, name: str, namespace: str) -> Predicate:
    return resource_exists(store, ResourceRef(KIND_POLICY, name, namespace))
