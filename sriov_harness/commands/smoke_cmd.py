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


"""Smoke scenario: reap, provision the first workable device, tear down."""

from __future__ import annotations

import typer

from sriov_harness import console
from sriov_harness.config import DeviceDescriptor, load_settings
from sriov_harness.provisioner import NetworkSpec
from sriov_harness.reaper import LeftoverReaper
from sriov_harness.report import ConsoleReportSink
from sriov_harness.scenario import ScenarioRunner
from sriov_harness.snapshot import capture, diff
from sriov_harness.store import connect

SMOKE_CASE_ID = "00000"


def smoke(
    device: list[str] | None = typer.Option(
        None, "--device", help="Restrict to these device names (repeatable)"),
) -> None:
    """Run one end-to-end lifecycle scenario against the cluster."""
    settings = load_settings()
    store = connect(settings.kubeconfig)
    devices: list[DeviceDescriptor] = settings.devices()
    if device:
        devices = [d for d in devices if d.name in device]
        if not devices:
            raise typer.BadParameter(f"none of {device} is a configured device")

    LeftoverReaper(store, settings).sweep()
    before = capture(store, settings.operator_namespace)

    sink = ConsoleReportSink()
    runner = ScenarioRunner(store, settings, sink)
    try:
        with runner.scenario("lifecycle") as stack:
            result = runner.provision_first_available(
                stack, devices,
                lambda d: NetworkSpec(name=f"{SMOKE_CASE_ID}-{d.name}", resource_name=d.name),
            )
            runner.diagnostic("lifecycle", f"provisioned {result.policy.device} on {result.policy.node}",
                              capacity_confirmed=result.network.capacity_confirmed)
    finally:
        sink.summary()

    leftovers = diff(before, capture(store, settings.operator_namespace))
    for change in leftovers:
        console.print(f"[yellow]⚠️  {change}[/yellow]")
