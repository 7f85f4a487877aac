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


"""Resource Store interface and its kubectl-backed implementation.

The core only ever talks to a ResourceStore. Every failure surfaces as a
ResourceStoreError whose kind tells the caller how to react; translating
transport output into kinds happens here and nowhere else.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from sriov_harness import logger
from sriov_harness.constants import (
    API_VERSIONS,
    KUBECTL_RESOURCES,
    KUBECTL_TIMEOUT_SECONDS,
    WRITE_MAX_RETRIES,
    WRITE_RETRY_MAX_SECONDS,
    WRITE_RETRY_MIN_SECONDS,
)
from sriov_harness.errors import ResourceErrorKind, ResourceStoreError
from sriov_harness.utils import require_command, run_kubectl

Resource = dict[str, Any]


@dataclass(frozen=True)
class ResourceRef:
    """Identifies a cluster object; cluster-scoped kinds have no namespace."""

    kind: str
    name: str
    namespace: str | None = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{self.name}"
        return f"{self.kind} {self.name}"


def ref_of(resource: Resource) -> ResourceRef:
    """Build a ResourceRef from a resource dict."""
    meta = resource.get("metadata") or {}
    return ResourceRef(resource["kind"], meta["name"], meta.get("namespace"))


def new_resource(ref: ResourceRef, spec: dict[str, Any] | None = None, **metadata: Any) -> Resource:
    """Build a manifest skeleton for *ref* with the given spec and metadata."""
    meta: dict[str, Any] = {"name": ref.name, **metadata}
    if ref.namespace:
        meta["namespace"] = ref.namespace
    resource: Resource = {
        "apiVersion": API_VERSIONS.get(ref.kind, "v1"),
        "kind": ref.kind,
        "metadata": meta,
    }
    if spec is not None:
        resource["spec"] = spec
    return resource


class ResourceStore(Protocol):
    """Generic cluster object CRUD.

    All methods raise ResourceStoreError on failure.
    """

    def list(self, kind: str, namespace: str | None = None, selector: str | None = None) -> list[Resource]:
        """List objects of *kind*, optionally filtered by namespace and label selector."""

    def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        """Fetch one object; raises with kind NOT_FOUND if it does not exist."""

    def create(self, resource: Resource) -> Resource:
        """Create an object and return the stored version."""

    def update(self, resource: Resource) -> Resource:
        """Replace an object and return the stored version."""

    def delete(self, kind: str, name: str, namespace: str | None = None, *, force: bool = False) -> None:
        """Request deletion; *force* skips graceful termination."""


# ============================================================================
# kubectl implementation
# ============================================================================

_NOT_FOUND_MARKERS = ("(NotFound)", "NotFound", "not found")
_ALREADY_EXISTS_MARKERS = ("(AlreadyExists)", "AlreadyExists", "already exists")
_KIND_MISSING_MARKERS = (
    "the server doesn't have a resource type",
    "no matches for kind",
    "no kind is registered",
)
_TERMINAL_MARKERS = ("(Forbidden)", "(Invalid)", "(BadRequest)", "denied the request", "is invalid")


def classify_kubectl_error(stderr: str) -> ResourceErrorKind:
    """Map kubectl stderr onto a ResourceErrorKind.

    Args:
        stderr: Error output of a failed kubectl invocation.

    Returns:
        The matching kind; anything unrecognised is treated as transient.
    """
    if any(marker in stderr for marker in _KIND_MISSING_MARKERS):
        return ResourceErrorKind.KIND_NOT_REGISTERED
    if any(marker in stderr for marker in _ALREADY_EXISTS_MARKERS):
        return ResourceErrorKind.ALREADY_EXISTS
    if any(marker in stderr for marker in _NOT_FOUND_MARKERS):
        return ResourceErrorKind.NOT_FOUND
    if any(marker in stderr for marker in _TERMINAL_MARKERS):
        return ResourceErrorKind.TERMINAL
    return ResourceErrorKind.TRANSIENT


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ResourceStoreError) and exc.retryable


class KubectlResourceStore:
    """ResourceStore backed by kubectl JSON output.

    Args:
        kubeconfig: Explicit kubeconfig path, or None for kubectl's default.
        timeout: Per-call kubectl timeout in seconds.
    """

    def __init__(self, kubeconfig: str | None = None, timeout: int = KUBECTL_TIMEOUT_SECONDS) -> None:
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def _run(self, args: list[str], stdin: str | None = None) -> str:
        ok, stdout, stderr = run_kubectl(args, timeout=self.timeout, stdin=stdin, kubeconfig=self.kubeconfig)
        if not ok:
            kind = classify_kubectl_error(stderr)
            raise ResourceStoreError(kind, f"kubectl {' '.join(args[:3])} failed: {stderr.strip()[:300]}")
        return stdout

    @staticmethod
    def _resource(kind: str) -> str:
        return KUBECTL_RESOURCES.get(kind, kind)

    @staticmethod
    def _scope(namespace: str | None) -> list[str]:
        return ["-n", namespace] if namespace else []

    def list(self, kind: str, namespace: str | None = None, selector: str | None = None) -> list[Resource]:
        args = ["get", self._resource(kind), *self._scope(namespace), "-o", "json"]
        if selector:
            args += ["-l", selector]
        items = json.loads(self._run(args) or "{}").get("items", [])
        for item in items:
            item.setdefault("kind", kind)
        return items

    def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        return json.loads(self._run(["get", self._resource(kind), name, *self._scope(namespace), "-o", "json"]))

    @retry(
        stop=stop_after_attempt(WRITE_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=WRITE_RETRY_MIN_SECONDS, max=WRITE_RETRY_MAX_SECONDS),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    def create(self, resource: Resource) -> Resource:
        return json.loads(self._run(["create", "-f", "-", "-o", "json"], stdin=json.dumps(resource)))

    @retry(
        stop=stop_after_attempt(WRITE_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=WRITE_RETRY_MIN_SECONDS, max=WRITE_RETRY_MAX_SECONDS),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    def update(self, resource: Resource) -> Resource:
        return json.loads(self._run(["replace", "-f", "-", "-o", "json"], stdin=json.dumps(resource)))

    def delete(self, kind: str, name: str, namespace: str | None = None, *, force: bool = False) -> None:
        args = ["delete", self._resource(kind), name, *self._scope(namespace), "--wait=false"]
        if force:
            args += ["--grace-period=0", "--force"]
        logger.debug("kubectl %s", " ".join(args))
        self._run(args)


def connect(kubeconfig: str | None = None) -> KubectlResourceStore:
    """Return a kubectl-backed store after checking kubectl is installed.

    Raises:
        RuntimeError: If kubectl is not on PATH.
    """
    require_command("kubectl")
    return KubectlResourceStore(kubeconfig)
