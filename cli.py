#!/usr/bin/env python3
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


"""
cli.py - SR-IOV convergence and lifecycle harness.

Subcommands:
    reap        Remove namespaces, networks and policies left by earlier runs
    wait        Wait for readiness (stable, fleet, capacity, reconciled)
    provision   Provision policy, network, attachment and capacity for a device
    teardown    Remove resources (policy, network, namespace-networks)
    snapshot    Capture, diff and verify SR-IOV cluster state
    smoke       Run one lifecycle scenario on the first workable device

Examples:
    # Clean up after an interrupted run
    ./cli.py reap

    # Provision e810c on VLAN 100 and keep it
    ./cli.py provision e810c --vlan 100 --keep

    # Check nothing drifted across an operator restart
    ./cli.py snapshot capture -o before.yaml
    ./cli.py snapshot verify before.yaml

Configuration is read from SRIOV_* environment variables (see sriov_harness/config.py).

For detailed usage information, run: ./cli.py --help
"""

from __future__ import annotations

import logging
import sys

import typer

from sriov_harness import console
from sriov_harness.commands import (
    provision_cmd,
    reap_cmd,
    smoke_cmd,
    snapshot_cmd,
    teardown_cmd,
    wait_cmd,
)

app = typer.Typer(
    help="SR-IOV convergence and lifecycle harness for e2e runs.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every polling attempt"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.command("reap")(reap_cmd.reap)
app.command("provision")(provision_cmd.provision)
app.command("smoke")(smoke_cmd.smoke)
app.add_typer(wait_cmd.app, name="wait")
app.add_typer(teardown_cmd.app, name="teardown")
app.add_typer(snapshot_cmd.app, name="snapshot")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
