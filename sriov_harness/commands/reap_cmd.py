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


"""Leftover cleanup command."""

from __future__ import annotations

import typer

from sriov_harness.config import load_settings
from sriov_harness.reaper import LeftoverReaper
from sriov_harness.store import connect


def reap(
    cleanup_timeout: float | None = typer.Option(
        None, "--cleanup-timeout", help="Seconds to wait per leftover resource (overrides SRIOV_CLEANUP_TIMEOUT)"),
    strict: bool = typer.Option(
        False, "--strict", help="Exit non-zero if any leftover could not be removed"),
) -> None:
    """Remove namespaces, networks and policies left by earlier runs."""
    settings = load_settings()
    if cleanup_timeout is not None:
        settings = settings.model_copy(
            update={"timeouts": settings.timeouts.model_copy(update={"cleanup_timeout": cleanup_timeout})})
    report = LeftoverReaper(connect(settings.kubeconfig), settings).sweep()
    if strict and not report.clean:
        raise typer.Exit(code=1)
