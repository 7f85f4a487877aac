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


"""Configuration classes, device descriptors, and settings loading."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from pydantic import AliasChoices, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sriov_harness import logger
from sriov_harness.constants import (
    DEFAULT_ATTACHMENT_TIMEOUT,
    DEFAULT_CAPACITY_INTERVAL,
    DEFAULT_CAPACITY_TIMEOUT,
    DEFAULT_CLEANUP_TIMEOUT,
    DEFAULT_DEVICES,
    DEFAULT_MCP_LABEL,
    DEFAULT_NAMESPACE_TIMEOUT,
    DEFAULT_OPERATOR_NAMESPACE,
    DEFAULT_POLICY_APPLICATION_TIMEOUT,
    DEFAULT_POLLING_INTERVAL,
    DEFAULT_RECONCILE_TIMEOUT,
    DEFAULT_RESOURCE_PREFIX,
    DEFAULT_STABLE_INTERVAL,
    DEFAULT_TEARDOWN_TIMEOUT,
    DEFAULT_TEST_NAMESPACE,
    DEFAULT_VF_NUM,
    DEFAULT_WORKER_LABEL,
    DEVICE_FIELD_COUNT,
    VF_NUM_ENV_VARS,
)
from sriov_harness.errors import ConfigurationError


# ============================================================================
# Device descriptors
# ============================================================================

@dataclass(frozen=True)
class DeviceDescriptor:
    """Static description of one SR-IOV capable NIC.

    Attributes:
        name: Short device name, also used as policy and resource name.
        device_id: PCI device ID (e.g. ``1593``).
        vendor: PCI vendor ID (e.g. ``8086``).
        interface_name: Physical function interface name on the node.
    """

    name: str
    device_id: str
    vendor: str
    interface_name: str


def default_devices() -> list[DeviceDescriptor]:
    """Return the built-in device table."""
    return [DeviceDescriptor(*entry) for entry in DEFAULT_DEVICES]


def parse_device_list(raw: str) -> list[DeviceDescriptor]:
    """Parse a ``name:deviceID:vendor:interface`` comma-separated list.

    Entries that do not have exactly four colon-delimited fields are dropped.

    Args:
        raw: Raw override string (e.g. ``e810c:1593:8086:ens2f2,x710:1572:8086:ens5f0``).

    Returns:
        Parsed descriptors, in input order.
    """
    devices: list[DeviceDescriptor] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) != DEVICE_FIELD_COUNT:
            logger.warning("Dropping malformed device entry %r (expected name:deviceid:vendor:interface)", entry)
            continue
        devices.append(DeviceDescriptor(*(part.strip() for part in parts)))
    return devices


def resolve_devices(override: str | None) -> list[DeviceDescriptor]:
    """Resolve the device table from an override string or the defaults.

    Args:
        override: Value of the device list override, or None when unset.

    Returns:
        Parsed override entries, or the default table if no override is set.

    Raises:
        ConfigurationError: If an override is set but no entry could be parsed.
    """
    if not override or not override.strip():
        return default_devices()
    devices = parse_device_list(override)
    if not devices:
        raise ConfigurationError(
            f"SRIOV_DEVICES is set to {override!r} but no valid entries could be parsed; "
            "expected format: name:deviceid:vendor:interface"
        )
    return devices


# ============================================================================
# Configuration classes
# ============================================================================

class TimeoutSettings(BaseSettings):
    """Poll intervals and time budgets in seconds, auto-loaded from SRIOV_* env vars.

    Attributes:
        polling_interval: Default interval between predicate evaluations.
        namespace_timeout: Budget for the policy precondition before attachment waits.
        attachment_timeout: Budget for an attachment object to appear or disappear.
        capacity_timeout: Budget for allocatable VF capacity (soft).
        capacity_interval: Interval between capacity checks.
        policy_application_timeout: Budget for policy convergence (implies node reboots).
        stable_interval: Interval between convergence checks after policy changes.
        teardown_timeout: Budget for a deleted resource to disappear.
        cleanup_timeout: Budget for leftover resources removed by the reaper.
        reconcile_timeout: Budget for node states to return to Succeeded.
    """

    model_config = SettingsConfigDict(env_prefix="SRIOV_", extra="ignore")

    polling_interval: float = Field(default=DEFAULT_POLLING_INTERVAL, gt=0)
    namespace_timeout: float = Field(default=DEFAULT_NAMESPACE_TIMEOUT, gt=0)
    attachment_timeout: float = Field(default=DEFAULT_ATTACHMENT_TIMEOUT, gt=0)
    capacity_timeout: float = Field(default=DEFAULT_CAPACITY_TIMEOUT, gt=0)
    capacity_interval: float = Field(default=DEFAULT_CAPACITY_INTERVAL, gt=0)
    policy_application_timeout: float = Field(default=DEFAULT_POLICY_APPLICATION_TIMEOUT, gt=0)
    stable_interval: float = Field(default=DEFAULT_STABLE_INTERVAL, gt=0)
    teardown_timeout: float = Field(default=DEFAULT_TEARDOWN_TIMEOUT, gt=0)
    cleanup_timeout: float = Field(default=DEFAULT_CLEANUP_TIMEOUT, gt=0)
    reconcile_timeout: float = Field(default=DEFAULT_RECONCILE_TIMEOUT, gt=0)


def _parse_vf_num(value: object) -> int | None:
    try:
        vf_num = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return vf_num if vf_num > 0 else None


class HarnessSettings(BaseSettings):
    """Cluster and device configuration, auto-loaded from env vars.

    Attributes:
        devices_override: Raw ``SRIOV_DEVICES`` value, or None to use defaults.
        vf_num: Number of virtual functions to carve per policy.
        worker_label: Label selector identifying worker nodes (always contains ``=``).
        mcp_label: MachineConfigPool label filter, or empty for all pools.
        operator_namespace: Namespace of the SR-IOV operator and its CRs.
        test_namespace: Namespace workloads and attachments live in.
        resource_prefix: Prefix of the node allocatable resource key.
        kubeconfig: Path passed to kubectl, or None for its default.
        timeouts: Poll intervals and time budgets.
    """

    model_config = SettingsConfigDict(env_prefix="SRIOV_", extra="ignore", populate_by_name=True)

    devices_override: str | None = Field(
        default=None, validation_alias=AliasChoices("devices_override", "SRIOV_DEVICES"))
    vf_num: int = Field(
        default=DEFAULT_VF_NUM,
        validation_alias=AliasChoices(*VF_NUM_ENV_VARS))
    worker_label: str = Field(
        default=DEFAULT_WORKER_LABEL,
        validation_alias=AliasChoices("worker_label", "ECO_OCP_SRIOV_WORKER_LABEL", "SRIOV_WORKER_LABEL"))
    mcp_label: str = DEFAULT_MCP_LABEL
    operator_namespace: str = DEFAULT_OPERATOR_NAMESPACE
    test_namespace: str = DEFAULT_TEST_NAMESPACE
    resource_prefix: str = DEFAULT_RESOURCE_PREFIX
    kubeconfig: str | None = Field(default=None, validation_alias=AliasChoices("kubeconfig", "KUBECONFIG"))
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)

    @model_validator(mode="before")
    @classmethod
    def _resolve_vf_num_env(cls, data: Any) -> Any:
        """Fall through the VF count env vars until one holds a positive integer.

        An explicit ``vf_num`` wins over the environment.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        sourced = {name: data.pop(name, None) for name in VF_NUM_ENV_VARS}
        if "vf_num" in data:
            return data
        for name in VF_NUM_ENV_VARS:
            raw = os.environ.get(name, sourced[name])
            if raw is None:
                continue
            vf_num = _parse_vf_num(raw)
            if vf_num is not None:
                data["vf_num"] = vf_num
                return data
            logger.warning("Ignoring invalid VF count %s=%r", name, raw)
        return data

    @field_validator("vf_num", mode="before")
    @classmethod
    def _positive_vf_num(cls, value: object) -> int:
        vf_num = _parse_vf_num(value)
        if vf_num is None:
            logger.warning("Ignoring invalid VF count %r, using %d", value, DEFAULT_VF_NUM)
            return DEFAULT_VF_NUM
        return vf_num

    @field_validator("worker_label")
    @classmethod
    def _normalize_worker_label(cls, value: str) -> str:
        value = value.strip()
        if value and "=" not in value:
            return f"{value}="
        return value

    def devices(self) -> list[DeviceDescriptor]:
        """Return the device table (override entries or defaults)."""
        return resolve_devices(self.devices_override)

    def resource_key(self, resource_name: str) -> str:
        """Return the node allocatable key for a device resource name."""
        return f"{self.resource_prefix}{resource_name}"


def load_settings(**overrides: object) -> HarnessSettings:
    """Build settings from the environment and fail fast on bad values.

    Args:
        **overrides: Field values that take precedence over the environment.

    Returns:
        Validated settings whose device table has already been resolved once.

    Raises:
        ConfigurationError: If any value is malformed.
    """
    try:
        settings = HarnessSettings(**overrides)
    except ValidationError as err:
        raise ConfigurationError(f"invalid harness configuration: {err}") from err
    settings.devices()
    return settings
