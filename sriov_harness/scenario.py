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


"""Per-scenario lifecycle: cleanup stack, skip semantics and reporting."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from sriov_harness import logger
from sriov_harness.config import DeviceDescriptor, HarnessSettings
from sriov_harness.constants import DEV_TYPE_NETDEVICE
from sriov_harness.errors import FleetNotReadyError, NoWorkableTargetError, ScenarioSkipped
from sriov_harness.provisioner import CleanupStack, NetworkSpec, ProvisionResult, Provisioner
from sriov_harness.report import Outcome, ReportRecord, ReportSink
from sriov_harness.store import ResourceStore


class ScenarioRunner:
    """Runs scenarios against one cluster and reports their outcome.

    Args:
        store: Resource Store to act on.
        settings: Harness settings.
        sink: Where outcome records are written.
        cancel: Optional event that aborts every wait in every scenario.
    """

    def __init__(self, store: ResourceStore, settings: HarnessSettings, sink: ReportSink,
                 cancel: threading.Event | None = None) -> None:
        self.store = store
        self.settings = settings
        self.sink = sink
        self.cancel = cancel
        self.provisioner = Provisioner(store, settings, cancel=cancel)

    @contextmanager
    def scenario(self, name: str) -> Iterator[CleanupStack]:
        """Run the body with a fresh cleanup stack, then unwind it and report.

        ScenarioSkipped raised by the body is recorded as a skip and not
        re-raised. Any other failure is recorded and re-raised. A cleanup
        failure after a passing body fails the scenario.
        """
        stack = CleanupStack()
        logger.info("Scenario %r starting", name)
        try:
            with stack:
                yield stack
        except ScenarioSkipped as err:
            self.sink.record(ReportRecord(name, Outcome.SKIPPED, str(err)))
            return
        except Exception as err:
            self.sink.record(ReportRecord(name, Outcome.FAILED, str(err), {"error": type(err).__name__}))
            raise
        self.sink.record(ReportRecord(name, Outcome.PASSED))

    def diagnostic(self, name: str, message: str, **details: object) -> None:
        self.sink.record(ReportRecord(name, Outcome.DIAGNOSTIC, message, dict(details)))

    def provision_first_available(
        self,
        stack: CleanupStack,
        devices: Iterable[DeviceDescriptor],
        network_for: Callable[[DeviceDescriptor], NetworkSpec],
        dev_type: str = DEV_TYPE_NETDEVICE,
    ) -> ProvisionResult:
        """Provision the first device that has a workable target.

        A device is skipped when its policy converges nowhere or when the
        worker fleet is not ready for it.

        Args:
            stack: Scenario cleanup stack that receives teardown actions.
            devices: Candidates, tried in order.
            network_for: Builds the network spec for a device.
            dev_type: Device type of the policies.

        Raises:
            ScenarioSkipped: If no device has a workable target on this cluster.
        """
        reasons: list[str] = []
        for device in devices:
            try:
                return self.provisioner.provision(device, network_for(device), stack, dev_type, self.cancel)
            except (FleetNotReadyError, NoWorkableTargetError) as err:
                logger.info("Device %r has no workable target: %s", device.name, err)
                reasons.append(str(err))
        raise ScenarioSkipped("no SR-IOV device could be provisioned on this cluster" +
                              (f" ({'; '.join(reasons)})" if reasons else ""))
