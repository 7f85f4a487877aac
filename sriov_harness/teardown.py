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


"""Idempotent teardown with forced-delete fallback and network cascade."""

from __future__ import annotations

import threading

from sriov_harness import console, logger
from sriov_harness.config import HarnessSettings
from sriov_harness.constants import KIND_ATTACHMENT, KIND_NETWORK, KIND_POLICY
from sriov_harness.errors import PollTimeoutError, ResourceStoreError, TeardownError
from sriov_harness.polling import poll_until
from sriov_harness.predicates import resource_absent
from sriov_harness.store import ResourceRef, ResourceStore


class Teardown:
    """Deletes resources and waits until they are gone.

    Args:
        store: Resource Store to act on.
        settings: Harness settings supplying namespaces and timeouts.
        cancel: Optional event that aborts every wait.
    """

    def __init__(self, store: ResourceStore, settings: HarnessSettings,
                 cancel: threading.Event | None = None) -> None:
        self.store = store
        self.settings = settings
        self.cancel = cancel

    def _present(self, ref: ResourceRef) -> bool:
        try:
            self.store.get(ref.kind, ref.name, ref.namespace)
        except ResourceStoreError as err:
            if err.not_found:
                return False
            raise
        return True

    def _delete(self, ref: ResourceRef, force: bool = False) -> None:
        try:
            self.store.delete(ref.kind, ref.name, ref.namespace, force=force)
        except ResourceStoreError as err:
            if not err.not_found:
                raise

    def await_absence(self, ref: ResourceRef, timeout: float) -> None:
        """Wait for *ref* to disappear; on deadline force-delete once and re-check.

        Raises:
            TeardownError: If the resource still exists after the forced delete.
        """
        try:
            poll_until(
                resource_absent(self.store, ref),
                self.settings.timeouts.polling_interval,
                timeout,
                cancel=self.cancel,
                description=f"deletion of {ref}",
            )
            return
        except PollTimeoutError as err:
            logger.info("Timeout waiting for %s to disappear, attempting force delete: %s", ref, err)
            timeout_err = err
        try:
            self._delete(ref, force=True)
        except ResourceStoreError as err:
            raise TeardownError(f"forced delete of {ref} failed: {err}") from err
        if self._present(ref):
            raise TeardownError(
                f"{ref} was not deleted within {timeout:g}s, even after a forced delete"
            ) from timeout_err
        logger.info("%s deleted after forced delete", ref)

    def remove(self, ref: ResourceRef, timeout: float | None = None) -> bool:
        """Delete *ref* if it exists and wait until it is gone.

        Args:
            ref: Resource to remove.
            timeout: Budget for the disappearance wait; defaults to ``teardown_timeout``.

        Returns:
            True if a delete was issued, False if the resource was already absent.

        Raises:
            TeardownError: If the resource survives the forced-delete fallback.
            ResourceStoreError: If the store fails with anything but NotFound.
        """
        if timeout is None:
            timeout = self.settings.timeouts.teardown_timeout
        if not self._present(ref):
            logger.debug("%s does not exist, nothing to delete", ref)
            return False
        logger.info("Deleting %s", ref)
        self._delete(ref)
        self.await_absence(ref, timeout)
        return True

    def remove_policy(self, name: str, timeout: float | None = None) -> bool:
        """Remove a node policy from the operator namespace."""
        return self.remove(ResourceRef(KIND_POLICY, name, self.settings.operator_namespace), timeout)

    def remove_network(self, name: str, timeout: float | None = None) -> bool:
        """Remove a network and, when it targets another namespace, its attachment.

        The attachment object is generated by the operator in the network's
        target namespace; teardown is complete only once it is gone too.

        Returns:
            True if a delete was issued for the network.
        """
        op_ns = self.settings.operator_namespace
        ref = ResourceRef(KIND_NETWORK, name, op_ns)
        try:
            network = self.store.get(KIND_NETWORK, name, op_ns)
        except ResourceStoreError as err:
            if err.not_found:
                logger.debug("%s not found or already deleted", ref)
                return False
            raise
        target_ns = (network.get("spec") or {}).get("networkNamespace") or op_ns

        self.remove(ref, timeout)

        if target_ns != op_ns:
            attachment = ResourceRef(KIND_ATTACHMENT, name, target_ns)
            if not self._present(attachment):
                logger.debug("%s does not exist (already deleted or never created)", attachment)
            else:
                logger.info("Waiting for %s to be deleted", attachment)
                self.await_absence(attachment, self.settings.timeouts.attachment_timeout)
        console.print(f"[green]✓ Network '{name}' removed[/green]")
        return True

    def clean_networks_by_target_namespace(self, target_ns: str) -> int:
        """Delete every network targeting *target_ns* together with its attachment.

        Returns:
            Number of networks removed.

        Raises:
            TeardownError: If any network or attachment survives the fallback.
        """
        networks = self.store.list(KIND_NETWORK, namespace=self.settings.operator_namespace)
        cleaned = 0
        for network in networks:
            if (network.get("spec") or {}).get("networkNamespace") != target_ns:
                continue
            if self.remove_network(network["metadata"]["name"]):
                cleaned += 1
        logger.info("Cleaned %d networks targeting namespace %r", cleaned, target_ns)
        return cleaned
