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


"""Utility functions for kubectl, label selectors, and command checks."""

from __future__ import annotations

import re
import subprocess
from collections.abc import Mapping

import sh

from sriov_harness.constants import KUBECTL_TIMEOUT_SECONDS


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def run_kubectl(
    args: list[str],
    timeout: int = KUBECTL_TIMEOUT_SECONDS,
    stdin: str | None = None,
    kubeconfig: str | None = None,
) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because error classification needs stderr
    separated from the JSON on stdout.

    Args:
        args: kubectl arguments (e.g. ``["get", "nodes", "-o", "json"]``).
        timeout: Maximum seconds to wait for the command to complete.
        stdin: Text piped to kubectl (manifests for ``create -f -``).
        kubeconfig: Explicit kubeconfig path, or None for kubectl's default.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    cmd = ["kubectl"]
    if kubeconfig:
        cmd += ["--kubeconfig", kubeconfig]
    try:
        result = subprocess.run(
            [*cmd, *args],
            input=stdin,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def node_sort_key(name: str) -> tuple[str, int]:
    """Sort key that strips trailing digits and returns (prefix, number).

    Args:
        name: Kubernetes node name (e.g. ``worker-12``).

    Returns:
        Tuple of (name_prefix, trailing_number) for natural sort ordering.
    """
    m = re.search(r"-(\d+)$", name)
    return re.sub(r"-\d+$", "", name), (int(m.group(1)) if m else 0)


def matches_selector(labels: Mapping[str, str] | None, selector: str | None) -> bool:
    """Evaluate an equality-based label selector against a label map.

    Supports ``key=value``, ``key==value``, ``key!=value``, ``key`` (exists)
    and ``!key`` (absent), comma separated. ``key=`` matches an empty value.

    Args:
        labels: Object labels, or None.
        selector: Selector string, or None/empty to match everything.

    Returns:
        True if every requirement holds.
    """
    labels = labels or {}
    if not selector:
        return True
    for requirement in selector.split(","):
        requirement = requirement.strip()
        if not requirement:
            continue
        if "!=" in requirement:
            key, value = requirement.split("!=", 1)
            if labels.get(key.strip()) == value.strip():
                return False
        elif "=" in requirement:
            key, value = re.split(r"==?", requirement, maxsplit=1)
            if labels.get(key.strip()) != value.strip():
                return False
        elif requirement.startswith("!"):
            if requirement[1:].strip() in labels:
                return False
        elif requirement not in labels:
            return False
    return True


def metadata(resource: Mapping) -> Mapping:
    """Return the metadata block of a resource dict."""
    return resource.get("metadata") or {}


def resource_name(resource: Mapping) -> str:
    """Return ``metadata.name`` of a resource dict."""
    return metadata(resource).get("name", "")


def conditions(resource: Mapping) -> list[Mapping]:
    """Return ``status.conditions`` of a resource dict."""
    return (resource.get("status") or {}).get("conditions") or []


def parse_quantity(value: object) -> int:
    """Parse an integral Kubernetes quantity such as an extended resource count.

    Args:
        value: Quantity as reported in ``status.allocatable``.

    Returns:
        Integer value, or 0 if the quantity cannot be parsed.
    """
    try:
        return int(str(value).strip())
    except ValueError:
        return 0
