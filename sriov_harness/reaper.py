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


"""Removal of resources left behind by earlier, interrupted runs."""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.panel import Panel

from sriov_harness import console, logger
from sriov_harness.config import HarnessSettings
from sriov_harness.constants import (
    EXTRA_LEFTOVER_POLICY_PREFIXES,
    KIND_NAMESPACE,
    KIND_NETWORK,
    KIND_POLICY,
    LEFTOVER_NAMESPACE_PREFIX,
    LEFTOVER_NETWORK_PATTERN,
)
from sriov_harness.errors import HarnessError
from sriov_harness.store import ResourceRef, ResourceStore
from sriov_harness.teardown import Teardown
from sriov_harness.utils import resource_name


@dataclass
class ReapReport:
    """What a sweep removed and what it could not."""

    namespaces: list[str] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)
    policies: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def removed(self) -> int:
        return len(self.namespaces) + len(self.networks) + len(self.policies)

    @property
    def clean(self) -> bool:
        return not self.failures


class LeftoverReaper:
    """Sweeps test namespaces, networks and policies left by earlier runs.

    Args:
        store: Resource Store to act on.
        settings: Harness settings; the device table drives policy matching.
        teardown: Teardown to delete with; built from *store* and *settings* when omitted.
    """

    def __init__(self, store: ResourceStore, settings: HarnessSettings,
                 teardown: Teardown | None = None) -> None:
        self.store = store
        self.settings = settings
        self.teardown = teardown or Teardown(store, settings)

    def policy_prefixes(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.settings.devices()) + EXTRA_LEFTOVER_POLICY_PREFIXES

    def is_leftover_network(self, name: str) -> bool:
        return LEFTOVER_NETWORK_PATTERN.search(name) is not None

    def is_leftover_policy(self, name: str) -> bool:
        return name.startswith(self.policy_prefixes())

    def _remove(self, report: ReapReport, bucket: list[str], ref: ResourceRef, remove) -> None:
        try:
            remove()
        except HarnessError as err:
            logger.warning("Failed to remove leftover %s (continuing cleanup): %s", ref, err)
            report.failures[str(ref)] = str(err)
            return
        bucket.append(ref.name)

    def sweep(self) -> ReapReport:
        """Remove every leftover resource.

        Returns:
            Report of removed resources and per-resource failures.

        Raises:
            ResourceStoreError: If namespaces cannot be listed.
        """
        console.print(Panel.fit("Cleaning up leftover resources", style="bold blue"))
        report = ReapReport()
        cleanup_timeout = self.settings.timeouts.cleanup_timeout
        op_ns = self.settings.operator_namespace

        # Namespaces; a listing failure aborts the sweep.
        for ns in self.store.list(KIND_NAMESPACE):
            name = resource_name(ns)
            if not name.startswith(LEFTOVER_NAMESPACE_PREFIX):
                continue
            ref = ResourceRef(KIND_NAMESPACE, name)
            logger.info("Removing leftover test namespace %r", name)
            self._remove(report, report.namespaces, ref,
                         lambda ref=ref: self.teardown.remove(ref, cleanup_timeout))

        try:
            networks = self.store.list(KIND_NETWORK, namespace=op_ns)
        except HarnessError as err:
            logger.warning("Failed to list SR-IOV networks for cleanup: %s", err)
            networks = []
        for network in networks:
            name = resource_name(network)
            if not self.is_leftover_network(name):
                continue
            logger.info("Removing leftover SR-IOV network %r", name)
            self._remove(report, report.networks, ResourceRef(KIND_NETWORK, name, op_ns),
                         lambda name=name: self.teardown.remove_network(name, cleanup_timeout))

        try:
            policies = self.store.list(KIND_POLICY, namespace=op_ns)
        except HarnessError as err:
            logger.warning("Failed to list SR-IOV policies for cleanup: %s", err)
            policies = []
        for policy in policies:
            name = resource_name(policy)
            if not self.is_leftover_policy(name):
                continue
            logger.info("Removing leftover SR-IOV policy %r to prevent VF range conflicts", name)
            self._remove(report, report.policies, ResourceRef(KIND_POLICY, name, op_ns),
                         lambda name=name: self.teardown.remove_policy(name, cleanup_timeout))

        if report.clean:
            console.print(f"[green]✅ Removed {report.removed} leftover resources[/green]")
        else:
            console.print(f"[yellow]⚠️  Removed {report.removed} leftover resources, "
                          f"{len(report.failures)} could not be removed[/yellow]")
        return report
