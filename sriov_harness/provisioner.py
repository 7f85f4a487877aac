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


"""Dependency-ordered provisioning of SR-IOV policies, networks and attachments.

Provisioning is a chain: node policy -> network -> generated attachment ->
allocatable capacity. Each link is complete only once its readiness target
has been observed true; a failure rolls back whatever the chain created.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from rich.panel import Panel

from sriov_harness import console, logger
from sriov_harness.config import DeviceDescriptor, HarnessSettings
from sriov_harness.constants import (
    DEFAULT_LINK_STATE,
    DEFAULT_NETWORK_LOG_LEVEL,
    DEV_TYPE_NETDEVICE,
    DEV_TYPE_VFIO_PCI,
    KIND_NETWORK,
    KIND_NODE,
    KIND_NODE_STATE,
    KIND_POLICY,
    LABEL_HOSTNAME,
    MTU_MAX,
    MTU_MIN,
)
from sriov_harness.errors import (
    CleanupError,
    FleetNotReadyError,
    NoWorkableTargetError,
    PolicyMissingError,
    PollTimeoutError,
    PredicateError,
    ResourceStoreError,
    TeardownError,
)
from sriov_harness.polling import ReadinessTarget, poll_until, wait_for
from sriov_harness.predicates import (
    attachment_exists,
    capacity_available,
    node_fleet_ready,
    policy_exists,
    sriov_stable,
)
from sriov_harness.store import Resource, ResourceRef, ResourceStore, new_resource
from sriov_harness.teardown import Teardown
from sriov_harness.utils import node_sort_key

CleanupAction = Callable[[], object]

# ============================================================================
# Cleanup stack
# ============================================================================


class CleanupStack:
    """LIFO stack of named cleanup actions.

    Used as a context manager, the stack unwinds on exit. When the body
    raised, unwind failures are logged and the original error propagates.
    """

    def __init__(self) -> None:
        self._actions: list[tuple[str, CleanupAction]] = []

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, name: str, action: CleanupAction) -> None:
        """Register *action*; it runs before everything pushed earlier."""
        self._actions.append((name, action))

    def discard(self) -> None:
        """Forget every action without running it."""
        self._actions.clear()

    def transfer_to(self, other: CleanupStack) -> None:
        """Move every action onto *other*, keeping their relative order."""
        other._actions.extend(self._actions)
        self._actions.clear()

    def unwind(self) -> None:
        """Run every action in reverse push order, continuing past failures.

        Raises:
            CleanupError: If any action raised.
        """
        failures: list[tuple[str, BaseException]] = []
        while self._actions:
            name, action = self._actions.pop()
            logger.debug("Cleanup: %s", name)
            try:
                action()
            except Exception as err:
                logger.error("Cleanup action %r failed: %s", name, err)
                failures.append((name, err))
        if failures:
            raise CleanupError(failures)

    def __enter__(self) -> CleanupStack:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.unwind()
            return False
        try:
            self.unwind()
        except CleanupError as err:
            logger.error("Cleanup after failure was incomplete: %s", err)
        return False


# ============================================================================
# Provisioning plan
# ============================================================================


@dataclass
class ProvisioningStep:
    """One link of a provisioning chain.

    Attributes:
        name: Label used in logs and cleanup stacks.
        create: Submits the resource (or checks a precondition).
        rollback: Idempotent undo, or None when nothing needs undoing.
        readiness: Target that must be observed true before the step counts as done.
    """

    name: str
    create: Callable[[], object]
    rollback: CleanupAction | None = None
    readiness: ReadinessTarget | None = None


@dataclass
class ProvisioningPlan:
    """Ordered steps executed strictly one after another."""

    steps: list[ProvisioningStep] = field(default_factory=list)

    def execute(self, cancel: threading.Event | None = None, stack: CleanupStack | None = None) -> None:
        """Run every step; on failure roll back in reverse and re-raise.

        The failing step's rollback runs too, since a submission that
        errored may still have been persisted. Rollbacks must therefore be
        idempotent.

        Args:
            cancel: Event that aborts readiness waits.
            stack: When given, rollbacks of a successful run are pushed onto it.

        Raises:
            CleanupError: If rolling back after a failure itself failed
                (chained from the original failure).
        """
        started: list[ProvisioningStep] = []
        try:
            for step in self.steps:
                started.append(step)
                logger.debug("Provisioning step %r", step.name)
                step.create()
                if step.readiness is not None:
                    wait_for(step.readiness, cancel)
        except Exception as err:
            rollback = CleanupStack()
            for done in started:
                if done.rollback is not None:
                    rollback.push(f"rollback {done.name}", done.rollback)
            try:
                rollback.unwind()
            except CleanupError as cleanup_err:
                raise cleanup_err from err
            raise

        if stack is not None:
            for step in self.steps:
                if step.rollback is not None:
                    stack.push(f"teardown {step.name}", step.rollback)


# ============================================================================
# Results
# ============================================================================


@dataclass
class NetworkSpec:
    """Desired SR-IOV network.

    Attributes:
        name: Network (and generated attachment) name.
        resource_name: Device resource the network draws VFs from; also the policy name.
        target_namespace: Namespace the attachment is generated in; None uses ``test_namespace``.
        spoof_check: Spoof checking on the VF, or None to leave the operator default.
        trust: Trust mode on the VF, or None to leave the operator default.
        vlan: VLAN ID, 0 for none.
        vlan_qos: VLAN QoS priority, 0 for none.
        min_tx_rate: Minimum TX rate in Mbps, 0 for none.
        max_tx_rate: Maximum TX rate in Mbps, 0 for none.
        link_state: VF link state; empty means ``auto``.
    """

    name: str
    resource_name: str
    target_namespace: str | None = None
    spoof_check: bool | None = None
    trust: bool | None = None
    vlan: int = 0
    vlan_qos: int = 0
    min_tx_rate: int = 0
    max_tx_rate: int = 0
    link_state: str = ""


@dataclass(frozen=True)
class PolicyResult:
    device: str
    node: str
    interface_name: str
    dev_type: str
    num_vfs: int


@dataclass(frozen=True)
class NetworkResult:
    name: str
    namespace: str
    target_namespace: str
    capacity_confirmed: bool


@dataclass(frozen=True)
class ProvisionResult:
    policy: PolicyResult
    network: NetworkResult


def _on_off(flag: bool) -> str:
    return "on" if flag else "off"


# ============================================================================
# Provisioner
# ============================================================================


class Provisioner:
    """Creates policies and networks in dependency order.

    Args:
        store: Resource Store to act on.
        settings: Harness settings (namespaces, VF count, timeouts).
        teardown: Teardown used for pre-cleaning and rollbacks; built from
            *store*, *settings* and *cancel* when omitted.
        cancel: Event that aborts the deletion waits of the default teardown.
    """

    def __init__(self, store: ResourceStore, settings: HarnessSettings,
                 teardown: Teardown | None = None,
                 cancel: threading.Event | None = None) -> None:
        self.store = store
        self.settings = settings
        self.teardown = teardown or Teardown(store, settings, cancel)

    @property
    def _op_ns(self) -> str:
        return self.settings.operator_namespace

    # -- policies --

    def worker_nodes(self) -> list[str]:
        """Return worker node names in natural order (node2 before node10)."""
        nodes = self.store.list(KIND_NODE, selector=self.settings.worker_label)
        return sorted((n["metadata"]["name"] for n in nodes), key=node_sort_key)

    def discover_interface_name(self, node: str, device: DeviceDescriptor) -> str:
        """Find the PF interface name for *device* on *node* from its SR-IOV node state.

        Falls back to the configured interface name when the state is missing
        or lists no interface with a matching vendor and device ID.
        """
        try:
            state = self.store.get(KIND_NODE_STATE, node, self._op_ns)
        except ResourceStoreError as err:
            logger.debug("Could not read node state for %r, using %r: %s", node, device.interface_name, err)
            return device.interface_name
        for iface in (state.get("status") or {}).get("interfaces") or []:
            if iface.get("vendor") == device.vendor and iface.get("deviceID") == device.device_id and iface.get("name"):
                if iface["name"] != device.interface_name:
                    logger.info("Discovered interface %r on node %r (configured: %r)",
                                iface["name"], node, device.interface_name)
                return iface["name"]
        logger.debug("No %s:%s interface reported on node %r, using %r",
                     device.vendor, device.device_id, node, device.interface_name)
        return device.interface_name

    def build_policy(self, device: DeviceDescriptor, node: str, interface_name: str,
                     dev_type: str = DEV_TYPE_NETDEVICE) -> Resource:
        """Build a node policy pinning *device* VFs to a single node."""
        vf_num = self.settings.vf_num
        nic_selector: dict[str, Any] = {"pfNames": [f"{interface_name}#0-{vf_num - 1}"]}
        if device.vendor:
            nic_selector["vendor"] = device.vendor
        if device.device_id:
            nic_selector["deviceID"] = device.device_id
        return new_resource(
            ResourceRef(KIND_POLICY, device.name, self._op_ns),
            spec={
                "resourceName": device.name,
                "numVfs": vf_num,
                "nodeSelector": {LABEL_HOSTNAME: node},
                "nicSelector": nic_selector,
                "deviceType": dev_type,
            },
        )

    def init_vf(self, device: DeviceDescriptor, dev_type: str = DEV_TYPE_NETDEVICE,
                cancel: threading.Event | None = None) -> PolicyResult:
        """Create a node policy for *device* on the first worker where it converges.

        Candidates are tried in natural node-name order. A candidate whose
        policy cannot be submitted or does not converge within
        ``policy_application_timeout`` has its policy removed before the next
        one is tried.

        Args:
            device: Device to carve VFs from.
            dev_type: ``netdevice`` or ``vfio-pci``.
            cancel: Event that aborts convergence waits.

        Returns:
            The node and interface the policy converged on.

        Raises:
            FleetNotReadyError: If the worker fleet is unstable before starting.
            NoWorkableTargetError: If every candidate failed.
            CleanupError: If a failed candidate's policy could not be removed.
        """
        console.print(Panel.fit(f"Initializing {dev_type} VFs for {device.name}", style="bold blue"))
        if not node_fleet_ready(self.store, self.settings)():
            raise FleetNotReadyError(
                f"worker nodes matching {self.settings.worker_label!r} are not ready for SR-IOV initialization"
            )

        try:
            self.teardown.remove_policy(device.name, self.settings.timeouts.namespace_timeout)
        except (TeardownError, ResourceStoreError) as err:
            logger.info("Could not pre-clean existing policy %r: %s", device.name, err)

        timeouts = self.settings.timeouts
        failures: dict[str, str] = {}
        for node in self.worker_nodes():
            interface_name = self.discover_interface_name(node, device)
            policy = self.build_policy(device, node, interface_name, dev_type)
            logger.info("Creating policy %r on node %r (pfNames: %s)",
                        device.name, node, policy["spec"]["nicSelector"]["pfNames"])
            plan = ProvisioningPlan([
                ProvisioningStep(
                    name=f"policy {device.name}",
                    create=lambda policy=policy: self.store.create(policy),
                    rollback=lambda: self.teardown.remove_policy(device.name),
                    readiness=ReadinessTarget(
                        predicate=sriov_stable(self.store, self.settings),
                        interval=timeouts.stable_interval,
                        timeout=timeouts.policy_application_timeout,
                        description=f"policy {device.name} to apply on {node}",
                    ),
                ),
            ])
            try:
                plan.execute(cancel)
            except (ResourceStoreError, PollTimeoutError, PredicateError) as err:
                console.print(f"[yellow]⚠️  Policy {device.name} failed on {node}: {err}[/yellow]")
                failures[node] = str(err)
                continue
            console.print(f"[green]✅ Policy {device.name} applied on {node} ({interface_name})[/green]")
            return PolicyResult(device.name, node, interface_name, dev_type, self.settings.vf_num)

        raise NoWorkableTargetError(device.name, failures)

    def init_dpdk_vf(self, device: DeviceDescriptor, cancel: threading.Event | None = None) -> PolicyResult:
        """init_vf with the userspace (vfio-pci) driver."""
        return self.init_vf(device, DEV_TYPE_VFIO_PCI, cancel)

    def update_policy_mtu(self, name: str, mtu: int, wait: bool = True,
                          cancel: threading.Event | None = None) -> Resource:
        """Set the MTU on an existing policy and wait for the change to apply.

        Raises:
            ValueError: If *mtu* is outside 1-9192.
            ResourceStoreError: If the policy cannot be read or updated.
        """
        if not MTU_MIN <= mtu <= MTU_MAX:
            raise ValueError(f"invalid MTU {mtu}, must be in range {MTU_MIN}-{MTU_MAX}")
        policy = self.store.get(KIND_POLICY, name, self._op_ns)
        policy.setdefault("spec", {})["mtu"] = mtu
        updated = self.store.update(policy)
        logger.info("Policy %r updated with MTU %d", name, mtu)
        if wait:
            timeouts = self.settings.timeouts
            poll_until(
                sriov_stable(self.store, self.settings),
                timeouts.stable_interval,
                timeouts.policy_application_timeout,
                cancel=cancel,
                description=f"MTU {mtu} to apply for policy {name}",
            )
        return updated

    # -- networks --

    def build_network(self, spec: NetworkSpec) -> Resource:
        """Build the SriovNetwork manifest for *spec*."""
        body: dict[str, Any] = {
            "resourceName": spec.resource_name,
            "networkNamespace": spec.target_namespace or self.settings.test_namespace,
            "ipam": json.dumps({"type": "static"}),
            "capabilities": json.dumps({"mac": True, "ips": True}),
            "linkState": spec.link_state or DEFAULT_LINK_STATE,
            "logLevel": DEFAULT_NETWORK_LOG_LEVEL,
        }
        if spec.spoof_check is not None:
            body["spoofChk"] = _on_off(spec.spoof_check)
        if spec.trust is not None:
            body["trust"] = _on_off(spec.trust)
        for key, value in (("vlan", spec.vlan), ("vlanQoS", spec.vlan_qos),
                           ("minTxRate", spec.min_tx_rate), ("maxTxRate", spec.max_tx_rate)):
            if value > 0:
                body[key] = value
        return new_resource(ResourceRef(KIND_NETWORK, spec.name, self._op_ns), spec=body)

    def _require_policy(self, spec: NetworkSpec, cancel: threading.Event | None) -> None:
        try:
            poll_until(
                policy_exists(self.store, spec.resource_name, self._op_ns),
                self.settings.timeouts.polling_interval,
                self.settings.timeouts.namespace_timeout,
                cancel=cancel,
                description=f"policy {spec.resource_name}",
            )
        except PollTimeoutError as err:
            raise PolicyMissingError(
                f"policy {spec.resource_name!r} must exist in namespace {self._op_ns!r} "
                f"before network {spec.name!r} can be attached; ensure init_vf succeeded"
            ) from err

    def create_network(self, spec: NetworkSpec, cancel: threading.Event | None = None,
                       stack: CleanupStack | None = None) -> NetworkResult:
        """Create a network, wait for its attachment, then check VF capacity.

        Capacity is advisory: if it is not observed within
        ``capacity_timeout`` a warning is printed and the result reports
        ``capacity_confirmed=False``.

        Raises:
            PolicyMissingError: If the backing policy does not exist.
            PollTimeoutError: If the attachment is not generated in time.
            ResourceStoreError: If the network cannot be submitted.
        """
        timeouts = self.settings.timeouts
        manifest = self.build_network(spec)
        target_ns = manifest["spec"]["networkNamespace"]
        console.print(Panel.fit(f"Creating SR-IOV network {spec.name}", style="bold blue"))

        plan = ProvisioningPlan([
            ProvisioningStep(
                name=f"network {spec.name}",
                create=lambda: self.store.create(manifest),
                rollback=lambda: self.teardown.remove_network(spec.name),
            ),
            ProvisioningStep(
                name=f"attachment {target_ns}/{spec.name}",
                create=lambda: self._require_policy(spec, cancel),
                readiness=ReadinessTarget(
                    predicate=attachment_exists(self.store, spec.name, target_ns),
                    interval=timeouts.polling_interval,
                    timeout=timeouts.attachment_timeout,
                    description=f"attachment {target_ns}/{spec.name}",
                ),
            ),
        ])
        plan.execute(cancel, stack)
        console.print(f"[green]✅ Attachment {target_ns}/{spec.name} generated[/green]")

        capacity_confirmed = True
        try:
            poll_until(
                capacity_available(self.store, self.settings, spec.resource_name),
                timeouts.capacity_interval,
                timeouts.capacity_timeout,
                cancel=cancel,
                description=f"allocatable {self.settings.resource_key(spec.resource_name)}",
            )
        except (PollTimeoutError, PredicateError) as err:
            capacity_confirmed = False
            console.print(f"[yellow]⚠️  VF capacity not confirmed for {spec.resource_name}: {err}[/yellow]")
        return NetworkResult(spec.name, self._op_ns, target_ns, capacity_confirmed)

    # -- full chain --

    def provision(self, device: DeviceDescriptor, spec: NetworkSpec, stack: CleanupStack | None = None,
                  dev_type: str = DEV_TYPE_NETDEVICE,
                  cancel: threading.Event | None = None) -> ProvisionResult:
        """Provision policy, network, attachment and capacity for one device.

        On failure everything created so far is removed before the error
        propagates. On success teardown of the network and policy moves onto
        *stack*, so the caller's unwind removes the network first; without a
        stack the resources are left in place.

        Raises:
            CleanupError: If removing partially created resources failed
                (chained from the original failure).
            FleetNotReadyError: If the worker fleet is unstable.
            NoWorkableTargetError: If no worker accepted the policy.
            PolicyMissingError: If the policy vanished before the network attached.
            PollTimeoutError: If the attachment was not generated in time.
        """
        policy = self.init_vf(device, dev_type, cancel)
        local = CleanupStack()
        local.push(f"teardown policy {device.name}", lambda: self.teardown.remove_policy(device.name))
        try:
            network = self.create_network(spec, cancel, local)
        except Exception as err:
            try:
                local.unwind()
            except CleanupError as cleanup_err:
                raise cleanup_err from err
            raise

        if stack is not None:
            local.transfer_to(stack)
        else:
            local.discard()
        return ProvisionResult(policy, network)
