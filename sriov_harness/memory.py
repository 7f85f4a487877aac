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


"""In memory Resource Store.

Used by tests and local simulations. It behaves like an API server keyed by
(kind, namespace, name) and can be scripted to act like the operator.

Features
- Records every call so tests can assert on delete traffic
- Injects errors per operation, either once or persistently
- Lingering deletes: an object survives N reads after deletion
- Unregistered kinds fail with KIND_NOT_REGISTERED
- Hooks run after create/delete so tests can emulate reconciliation
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sriov_harness.errors import ResourceErrorKind, ResourceStoreError
from sriov_harness.store import Resource, ResourceRef, ref_of
from sriov_harness.utils import matches_selector

Hook = Callable[["InMemoryResourceStore", Resource], None]


@dataclass
class InMemoryResourceStore:
    """ResourceStore held in a dict.

    linger
    Mapping of ResourceRef to the number of reads an object keeps answering
    after a non-forced delete. Forced deletes remove it at once.

    failures
    Mapping of (operation, kind) to a list of error kinds raised in order,
    one per call. Use ``fail`` to schedule them.

    sticky_failures
    Mapping of (operation, kind) to an error kind raised on every call.
    """

    objects: dict[tuple[str, str | None, str], Resource] = field(default_factory=dict)
    unregistered: set[str] = field(default_factory=set)
    linger: dict[ResourceRef, int] = field(default_factory=dict)
    failures: dict[tuple[str, str], list[ResourceErrorKind]] = field(default_factory=dict)
    sticky_failures: dict[tuple[str, str], ResourceErrorKind] = field(default_factory=dict)
    on_create: list[Hook] = field(default_factory=list)
    on_delete: list[Hook] = field(default_factory=list)
    calls: list[tuple[str, str, str | None, str | None]] = field(default_factory=list)
    _pending: dict[ResourceRef, int] = field(default_factory=dict)

    # -- scripting helpers --

    def add(self, resource: Resource) -> Resource:
        """Insert or replace an object without recording a call."""
        ref = ref_of(resource)
        stored = copy.deepcopy(resource)
        self.objects[(ref.kind, ref.namespace, ref.name)] = stored
        return stored

    def fail(self, operation: str, kind: str, *errors: ResourceErrorKind) -> None:
        """Schedule one error per future call of *operation* on *kind*."""
        self.failures.setdefault((operation, kind), []).extend(errors)

    def exists(self, ref: ResourceRef) -> bool:
        return (ref.kind, ref.namespace, ref.name) in self.objects

    def deletes(self, kind: str | None = None) -> list[tuple[str, str | None, str | None]]:
        """Return recorded delete calls as (kind, namespace, name)."""
        return [
            (k, ns, name) for op, k, ns, name in self.calls
            if op in ("delete", "force-delete") and (kind is None or k == kind)
        ]

    # -- internals --

    def _check(self, operation: str, kind: str, name: str | None = None) -> None:
        if kind in self.unregistered:
            raise ResourceStoreError(ResourceErrorKind.KIND_NOT_REGISTERED, f"no kind {kind} is registered")
        sticky = self.sticky_failures.get((operation, kind))
        if sticky is not None:
            raise ResourceStoreError(sticky, f"injected {sticky.value} on {operation} {kind} {name or ''}")
        queued = self.failures.get((operation, kind))
        if queued:
            err = queued.pop(0)
            raise ResourceStoreError(err, f"injected {err.value} on {operation} {kind} {name or ''}")

    def _tick(self, ref: ResourceRef) -> None:
        remaining = self._pending.get(ref)
        if remaining is None:
            return
        if remaining <= 0:
            self._pending.pop(ref)
            removed = self.objects.pop((ref.kind, ref.namespace, ref.name), None)
            if removed is not None:
                for hook in self.on_delete:
                    hook(self, removed)
        else:
            self._pending[ref] = remaining - 1

    # -- ResourceStore --

    def list(self, kind: str, namespace: str | None = None, selector: str | None = None) -> list[Resource]:
        self.calls.append(("list", kind, namespace, None))
        self._check("list", kind)
        for key in [k for k in self.objects if k[0] == kind]:
            self._tick(ResourceRef(key[0], key[2], key[1]))
        return [
            copy.deepcopy(obj) for (k, ns, _), obj in sorted(self.objects.items(), key=lambda i: str(i[0]))
            if k == kind
            and (namespace is None or ns == namespace)
            and matches_selector((obj.get("metadata") or {}).get("labels"), selector)
        ]

    def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        self.calls.append(("get", kind, namespace, name))
        self._check("get", kind, name)
        self._tick(ResourceRef(kind, name, namespace))
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise ResourceStoreError(ResourceErrorKind.NOT_FOUND, f"{kind} {namespace}/{name} not found")
        return copy.deepcopy(obj)

    def create(self, resource: Resource) -> Resource:
        ref = ref_of(resource)
        self.calls.append(("create", ref.kind, ref.namespace, ref.name))
        self._check("create", ref.kind, ref.name)
        if self.exists(ref):
            raise ResourceStoreError(ResourceErrorKind.ALREADY_EXISTS, f"{ref} already exists")
        stored = self.add(resource)
        for hook in self.on_create:
            hook(self, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def update(self, resource: Resource) -> Resource:
        ref = ref_of(resource)
        self.calls.append(("update", ref.kind, ref.namespace, ref.name))
        self._check("update", ref.kind, ref.name)
        if not self.exists(ref):
            raise ResourceStoreError(ResourceErrorKind.NOT_FOUND, f"{ref} not found")
        return copy.deepcopy(self.add(resource))

    def delete(self, kind: str, name: str, namespace: str | None = None, *, force: bool = False) -> None:
        ref = ResourceRef(kind, name, namespace)
        self.calls.append(("force-delete" if force else "delete", kind, namespace, name))
        self._check("delete", kind, name)
        if not self.exists(ref):
            raise ResourceStoreError(ResourceErrorKind.NOT_FOUND, f"{ref} not found")
        if force:
            self._pending[ref] = 0
        else:
            self._pending.setdefault(ref, self.linger.get(ref, 0))
            if self._pending[ref] > 0:
                return
        self._tick(ref)


def simple(kind: str, name: str, namespace: str | None = None, **fields: Any) -> Resource:
    """Build a minimal resource dict; extra keyword arguments become top-level fields."""
    meta: dict[str, Any] = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    labels = fields.pop("labels", None)
    if labels is not None:
        meta["labels"] = labels
    return {"kind": kind, "metadata": meta, **fields}
