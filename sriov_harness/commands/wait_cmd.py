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


"""Readiness wait subcommands (stable, fleet, capacity, reconciled)."""

from __future__ import annotations

import typer

from sriov_harness import console
from sriov_harness.config import HarnessSettings, load_settings
from sriov_harness.polling import poll_until
from sriov_harness.predicates import capacity_available, node_fleet_ready, sriov_stable
from sriov_harness.snapshot import wait_node_states_reconciled
from sriov_harness.store import connect

app = typer.Typer(help="Wait for cluster readiness conditions.")


def _with_timeout(settings: HarnessSettings, field: str, timeout: float | None) -> HarnessSettings:
    if timeout is None:
        return settings
    return settings.model_copy(update={"timeouts": settings.timeouts.model_copy(update={field: timeout})})


@app.command()
def stable(
    timeout: float | None = typer.Option(
        None, "--timeout", help="Seconds to wait (overrides SRIOV_POLICY_APPLICATION_TIMEOUT)"),
) -> None:
    """Wait for SR-IOV node sync, machine config pools and worker nodes to settle."""
    settings = _with_timeout(load_settings(), "policy_application_timeout", timeout)
    store = connect(settings.kubeconfig)
    poll_until(
        sriov_stable(store, settings),
        settings.timeouts.stable_interval,
        settings.timeouts.policy_application_timeout,
        description="SR-IOV and MachineConfigPool stability",
    )
    console.print("[green]✅ SR-IOV configuration and worker nodes are stable[/green]")


@app.command()
def fleet(
    timeout: float | None = typer.Option(
        None, "--timeout", help="Seconds to wait (overrides SRIOV_NAMESPACE_TIMEOUT)"),
) -> None:
    """Wait until every worker node is Ready and free of pressure conditions."""
    settings = _with_timeout(load_settings(), "namespace_timeout", timeout)
    store = connect(settings.kubeconfig)
    poll_until(
        node_fleet_ready(store, settings),
        settings.timeouts.polling_interval,
        settings.timeouts.namespace_timeout,
        description="worker nodes to be ready",
    )
    console.print("[green]✅ All worker nodes are ready[/green]")


@app.command()
def capacity(
    resource: str = typer.Argument(..., help="Device resource name (e.g. e810c)"),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Seconds to wait (overrides SRIOV_CAPACITY_TIMEOUT)"),
) -> None:
    """Wait until some worker node advertises allocatable VFs for RESOURCE."""
    settings = _with_timeout(load_settings(), "capacity_timeout", timeout)
    store = connect(settings.kubeconfig)
    poll_until(
        capacity_available(store, settings, resource),
        settings.timeouts.capacity_interval,
        settings.timeouts.capacity_timeout,
        description=f"allocatable {settings.resource_key(resource)}",
    )
    console.print(f"[green]✅ {settings.resource_key(resource)} is allocatable[/green]")


@app.command()
def reconciled(
    timeout: float | None = typer.Option(
        None, "--timeout", help="Seconds to wait (overrides SRIOV_RECONCILE_TIMEOUT)"),
) -> None:
    """Wait until every SR-IOV node state reports Succeeded."""
    settings = _with_timeout(load_settings(), "reconcile_timeout", timeout)
    wait_node_states_reconciled(connect(settings.kubeconfig), settings)
    console.print("[green]✅ SR-IOV node states reconciled[/green]")
