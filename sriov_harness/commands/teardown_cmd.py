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


"""Teardown subcommands (policy, network, namespace-networks)."""

from __future__ import annotations

import typer

from sriov_harness import console
from sriov_harness.config import load_settings
from sriov_harness.store import connect
from sriov_harness.teardown import Teardown

app = typer.Typer(help="Remove SR-IOV resources and wait until they are gone.")


def _teardown() -> Teardown:
    settings = load_settings()
    return Teardown(connect(settings.kubeconfig), settings)


@app.command()
def policy(
    name: str = typer.Argument(..., help="SriovNetworkNodePolicy name"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait for deletion"),
) -> None:
    """Delete a node policy from the operator namespace."""
    if _teardown().remove_policy(name, timeout):
        console.print(f"[green]✅ Policy '{name}' removed[/green]")
    else:
        console.print(f"[yellow]⚠️  Policy '{name}' does not exist[/yellow]")


@app.command()
def network(
    name: str = typer.Argument(..., help="SriovNetwork name"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait for deletion"),
) -> None:
    """Delete a network and wait for its generated attachment to disappear."""
    if not _teardown().remove_network(name, timeout):
        console.print(f"[yellow]⚠️  Network '{name}' does not exist[/yellow]")


@app.command("namespace-networks")
def namespace_networks(
    namespace: str = typer.Argument(..., help="Target namespace of the networks"),
) -> None:
    """Delete every network whose attachments are generated in NAMESPACE."""
    count = _teardown().clean_networks_by_target_namespace(namespace)
    console.print(f"[green]✅ Removed {count} networks targeting '{namespace}'[/green]")
