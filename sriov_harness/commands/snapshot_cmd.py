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


"""Snapshot subcommands (capture, diff, verify)."""

from __future__ import annotations

from pathlib import Path

import typer
import yaml

from sriov_harness import console
from sriov_harness.config import load_settings
from sriov_harness.snapshot import ClusterSnapshot, capture, diff, verify_reconvergence
from sriov_harness.store import connect

app = typer.Typer(help="Capture and compare SR-IOV cluster state.")


def load_snapshot(path: Path) -> ClusterSnapshot:
    with path.open() as f:
        return ClusterSnapshot.from_dict(yaml.safe_load(f) or {})


def save_snapshot(snapshot: ClusterSnapshot, path: Path) -> None:
    with path.open("w") as f:
        yaml.safe_dump(snapshot.to_dict(), f, sort_keys=False)


@app.command("capture")
def capture_cmd(
    output: Path = typer.Option(..., "-o", "--output", help="YAML file to write"),
) -> None:
    """Record policies, networks and node sync status to a YAML file."""
    settings = load_settings()
    snapshot = capture(connect(settings.kubeconfig), settings.operator_namespace)
    save_snapshot(snapshot, output)
    console.print(f"[green]✅ Snapshot written to {output}[/green]")


@app.command("diff")
def diff_cmd(
    before: Path = typer.Argument(..., exists=True, dir_okay=False, help="Earlier snapshot"),
    after: Path = typer.Argument(..., exists=True, dir_okay=False, help="Later snapshot"),
) -> None:
    """Compare two snapshot files; exits 1 if they differ."""
    changes = diff(load_snapshot(before), load_snapshot(after))
    if not changes:
        console.print("[green]✅ No differences[/green]")
        return
    for change in changes:
        console.print(f"  {change}")
    raise typer.Exit(code=1)


@app.command("verify")
def verify_cmd(
    before: Path = typer.Argument(..., exists=True, dir_okay=False, help="Snapshot taken before the disruption"),
) -> None:
    """Wait for node states to reconcile and check nothing else changed since BEFORE."""
    settings = load_settings()
    changes = verify_reconvergence(load_snapshot(before), connect(settings.kubeconfig), settings)
    console.print(f"[green]✅ State reconverged ({len(changes)} expected node status changes)[/green]")
