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


"""Error taxonomy.

Errors are split by how callers recover from them:
- ResourceStoreError carries a ResourceErrorKind; the core switches on the
  kind, never on message text.
- PredicateError is terminal: polling stops at once.
- PollTimeoutError is a deadline; callers may attempt forced cleanup.
- PollCancelledError is an external abort, neither terminal nor deadline.
"""

from __future__ import annotations

from enum import Enum


class ResourceErrorKind(str, Enum):
    """Classification of a Resource Store failure."""

    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    KIND_NOT_REGISTERED = "KindNotRegistered"
    TRANSIENT = "Transient"
    TERMINAL = "Terminal"


class HarnessError(Exception):
    """Base class for all harness exceptions."""


class ConfigurationError(HarnessError):
    """Raised at startup when configuration is malformed."""


class ResourceStoreError(HarnessError):
    """Raised by Resource Store calls."""

    def __init__(self, kind: ResourceErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def not_found(self) -> bool:
        return self.kind is ResourceErrorKind.NOT_FOUND

    @property
    def retryable(self) -> bool:
        return self.kind is ResourceErrorKind.TRANSIENT


class PredicateError(HarnessError):
    """Raised by a readiness predicate when the target state is unreachable."""


class PollTimeoutError(HarnessError):
    """Raised when a poll exhausts its time budget."""

    def __init__(self, description: str, timeout: float, attempts: int) -> None:
        super().__init__(
            f"timed out after {timeout:g}s waiting for {description} ({attempts} attempts)"
        )
        self.description = description
        self.timeout = timeout
        self.attempts = attempts


class PollCancelledError(HarnessError):
    """Raised when a poll is aborted through its cancellation event."""

    def __init__(self, description: str) -> None:
        super().__init__(f"cancelled while waiting for {description}")
        self.description = description


class FleetNotReadyError(HarnessError):
    """Raised when the worker fleet is unstable before provisioning starts."""


class PolicyMissingError(HarnessError):
    """Raised when a network is created without its backing policy."""


class NoWorkableTargetError(HarnessError):
    """Raised when every candidate worker failed to provision.

    Attributes:
        device: Device (policy) name that was being provisioned.
        failures: Mapping of candidate node name to the reason it was abandoned.
    """

    def __init__(self, device: str, failures: dict[str, str]) -> None:
        detail = "; ".join(f"{node}: {reason}" for node, reason in failures.items()) or "no candidates"
        super().__init__(f"no workable target for device '{device}' ({detail})")
        self.device = device
        self.failures = failures


class TeardownError(HarnessError):
    """Raised when a resource is still present after the forced-delete fallback."""


class CleanupError(HarnessError):
    """Raised when one or more cleanup actions fail while unwinding."""

    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        detail = "; ".join(f"{name}: {err}" for name, err in failures)
        super().__init__(f"{len(failures)} cleanup action(s) failed: {detail}")
        self.failures = failures


class StateDriftError(HarnessError):
    """Raised when cluster state did not reconverge to its earlier snapshot."""

    def __init__(self, changes: list) -> None:
        super().__init__("unexpected state changes: " + ", ".join(str(c) for c in changes))
        self.changes = changes


class ScenarioSkipped(HarnessError):
    """Raised when a scenario cannot run on this cluster (no workable device)."""
