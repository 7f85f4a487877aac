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


"""Provisioning command: policy, network, attachment and capacity for one device."""

from __future__ import annotations

import typer

from sriov_harness import console
from sriov_harness.config import DeviceDescriptor, HarnessSettings, load_settings
from sriov_harness.constants import DEV_TYPE_NETDEVICE, DEV_TYPE_VFIO_PCI
from sriov_harness.provisioner import CleanupStack, NetworkSpec, Provisioner
from sriov_harness.store import connect


def find_device(settings: HarnessSettings, name: str) -> DeviceDescriptor:
    """Look up a configured device by name.

    Raises:
        typer.BadParameter: If no configured device has that name.
    """
    devices = settings.devices()
    for device in devices:
        if device.name == name:
            return device
    known = ", ".join(d.name for d in devices)
    raise typer.BadParameter(f"unknown device '{name}' (configured: {known})")


def provision(
    device: str = typer.Argument(..., help="Configured device name (e.g. e810c)"),
    network: str | None = typer.Option(
        None, "--network", help="Network name (default: <device>-net)"),
    target_namespace: str | None = typer.Option(
        None, "--target-namespace", help="Namespace for the attachment (default: SRIOV_TEST_NAMESPACE)"),
    vlan: int = typer.Option(0, "--vlan", min=0, max=4094, help="VLAN ID, 0 for none"),
    dev_type: str = typer.Option(
        DEV_TYPE_NETDEVICE, "--dev-type", help=f"{DEV_TYPE_NETDEVICE} or {DEV_TYPE_VFIO_PCI}"),
    keep: bool = typer.Option(
        False, "--keep", help="Leave the policy and network in place instead of tearing them down"),
) -> None:
    """Provision DEVICE end to end and (unless --keep) tear it down again."""
    if dev_type not in (DEV_TYPE_NETDEVICE, DEV_TYPE_VFIO_PCI):
        raise typer.BadParameter(f"--dev-type must be {DEV_TYPE_NETDEVICE} or {DEV_TYPE_VFIO_PCI}")
    settings = load_settings()
    descriptor = find_device(settings, device)
    spec = NetworkSpec(
        name=network or f"{descriptor.name}-net",
        resource_name=descriptor.name,
        target_namespace=target_namespace,
        vlan=vlan,
    )
    provisioner = Provisioner(connect(settings.kubeconfig), settings)

    with CleanupStack() as stack:
        result = provisioner.provision(descriptor, spec, stack, dev_type)
        console.print(
            f"[green]✅ {descriptor.name}: policy on {result.policy.node} ({result.policy.interface_name}), "
            f"attachment {result.network.target_namespace}/{result.network.name}[/green]"
        )
        if not result.network.capacity_confirmed:
            console.print("[yellow]⚠️  VF capacity was not confirmed[/yellow]")
        if keep:
            console.print(f"[yellow]⚠️  Keeping {len(stack)} resources (--keep)[/yellow]")
            stack.discard()
