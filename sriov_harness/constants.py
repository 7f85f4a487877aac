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


"""Constants: resource kinds, labels, condition names, and default timeouts."""

from __future__ import annotations

import re

# -- Resource kinds --
KIND_POLICY = "SriovNetworkNodePolicy"
KIND_NETWORK = "SriovNetwork"
KIND_NODE_STATE = "SriovNetworkNodeState"
KIND_ATTACHMENT = "NetworkAttachmentDefinition"
KIND_POOL = "MachineConfigPool"
KIND_NODE = "Node"
KIND_NAMESPACE = "Namespace"

# kubectl resource names (fully qualified for CRDs to avoid short-name clashes)
KUBECTL_RESOURCES = {
    KIND_POLICY: "sriovnetworknodepolicies.sriovnetwork.openshift.io",
    KIND_NETWORK: "sriovnetworks.sriovnetwork.openshift.io",
    KIND_NODE_STATE: "sriovnetworknodestates.sriovnetwork.openshift.io",
    KIND_ATTACHMENT: "network-attachment-definitions.k8s.cni.cncf.io",
    KIND_POOL: "machineconfigpools.machineconfiguration.openshift.io",
    KIND_NODE: "nodes",
    KIND_NAMESPACE: "namespaces",
}

API_VERSIONS = {
    KIND_POLICY: "sriovnetwork.openshift.io/v1",
    KIND_NETWORK: "sriovnetwork.openshift.io/v1",
    KIND_NODE_STATE: "sriovnetwork.openshift.io/v1",
    KIND_ATTACHMENT: "k8s.cni.cncf.io/v1",
    KIND_POOL: "machineconfiguration.openshift.io/v1",
    KIND_NODE: "v1",
    KIND_NAMESPACE: "v1",
}

# -- Status and condition values --
SYNC_STATUS_SUCCEEDED = "Succeeded"
SYNC_STATUS_IN_PROGRESS = "InProgress"

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

NODE_CONDITION_READY = "Ready"
NODE_CONDITION_MEMORY_PRESSURE = "MemoryPressure"
NODE_CONDITION_DISK_PRESSURE = "DiskPressure"
NODE_UNSTABLE_REASONS = ("NodeNotReady", "Rebooting", "KernelDeadlock")

POOL_CONDITION_UPDATED = "Updated"
POOL_CONDITION_DEGRADED = "Degraded"

# -- Labels --
LABEL_HOSTNAME = "kubernetes.io/hostname"
DEFAULT_WORKER_LABEL = "node-role.kubernetes.io/worker="
DEFAULT_MCP_LABEL = "machineconfiguration.openshift.io/role=worker"

# -- Namespaces --
DEFAULT_OPERATOR_NAMESPACE = "openshift-sriov-network-operator"
DEFAULT_TEST_NAMESPACE = "sriov-tests"

# -- Device resources --
DEFAULT_RESOURCE_PREFIX = "openshift.io/"
DEFAULT_VF_NUM = 2
# Checked in order; the first holding a positive integer wins.
VF_NUM_ENV_VARS = ("ECO_OCP_SRIOV_VF_NUM", "SRIOV_VF_NUM")
DEV_TYPE_NETDEVICE = "netdevice"
DEV_TYPE_VFIO_PCI = "vfio-pci"
DEFAULT_LINK_STATE = "auto"
DEFAULT_NETWORK_LOG_LEVEL = "debug"
MTU_MIN = 1
MTU_MAX = 9192

# (name, deviceID, vendor, interface)
DEFAULT_DEVICES = (
    ("e810xxv", "159b", "8086", "eno12409"),
    ("e810c", "1593", "8086", "ens2f2"),
    ("x710", "1572", "8086", "ens5f0"),
    ("bcm57414", "16d7", "14e4", "ens4f1np1"),
    ("bcm57508", "1750", "14e4", "ens3f0np0"),
    ("e810back", "1591", "8086", "ens4f2"),
    ("cx7anl244", "1021", "15b3", "ens2f0np0"),
)
DEVICE_FIELD_COUNT = 4

# -- Leftover naming conventions --
LEFTOVER_NAMESPACE_PREFIX = "e2e-"
# 5-digit test case ID prefix ("25959-e810c") or DPDK network ("e810cdpdknet")
LEFTOVER_NETWORK_PATTERN = re.compile(r"^\d{5}-|\w+dpdknet$")
EXTRA_LEFTOVER_POLICY_PREFIXES = ("cx5ex",)

# -- Timeouts (seconds) --
DEFAULT_POLLING_INTERVAL = 3.0
DEFAULT_NAMESPACE_TIMEOUT = 30.0
DEFAULT_ATTACHMENT_TIMEOUT = 180.0
DEFAULT_CAPACITY_TIMEOUT = 60.0
DEFAULT_CAPACITY_INTERVAL = 5.0
DEFAULT_POLICY_APPLICATION_TIMEOUT = 20 * 60.0
DEFAULT_STABLE_INTERVAL = 30.0
DEFAULT_TEARDOWN_TIMEOUT = 300.0
DEFAULT_CLEANUP_TIMEOUT = 120.0
DEFAULT_RECONCILE_TIMEOUT = 20 * 60.0

KUBECTL_TIMEOUT_SECONDS = 60

# -- Cluster write retries (webhook races) --
WRITE_MAX_RETRIES = 3
WRITE_RETRY_MIN_SECONDS = 1
WRITE_RETRY_MAX_SECONDS = 8
