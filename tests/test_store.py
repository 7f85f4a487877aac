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


import json

import pytest

from sriov_harness import store as store_module
from sriov_harness.constants import KIND_NETWORK, KIND_POLICY
from sriov_harness.errors import ResourceErrorKind, ResourceStoreError
from sriov_harness.store import KubectlResourceStore, ResourceRef, classify_kubectl_error, new_resource


@pytest.mark.parametrize("stderr, kind", [
    ('Error from server (NotFound): sriovnetworks.sriovnetwork.openshift.io "x" not found',
     ResourceErrorKind.NOT_FOUND),
    ('Error from server (AlreadyExists): sriovnetworknodepolicies "e810c" already exists',
     ResourceErrorKind.ALREADY_EXISTS),
    ('error: the server doesn\'t have a resource type "machineconfigpools"',
     ResourceErrorKind.KIND_NOT_REGISTERED),
    ("Unable to connect to the server: dial tcp 10.0.0.1:6443: i/o timeout",
     ResourceErrorKind.TRANSIENT),
])
def test_classify_kubectl_error(stderr, kind):
    assert classify_kubectl_error(stderr) is kind


class FakeKubectl:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, args, timeout=60, stdin=None, kubeconfig=None):
        self.calls.append((args, stdin))
        return self.responses.pop(0)


def test_get_not_found_raises_typed_error(monkeypatch):
    fake = FakeKubectl((False, "", 'Error from server (NotFound): sriovnetworks "x" not found'))
    monkeypatch.setattr(store_module, "run_kubectl", fake)
    with pytest.raises(ResourceStoreError) as exc:
        KubectlResourceStore().get(KIND_NETWORK, "x", "ns")
    assert exc.value.not_found


def test_list_passes_namespace_and_selector(monkeypatch):
    fake = FakeKubectl((True, json.dumps({"items": [{"metadata": {"name": "a"}}]}), ""))
    monkeypatch.setattr(store_module, "run_kubectl", fake)
    items = KubectlResourceStore().list(KIND_POLICY, namespace="op", selector="app=x")
    assert items == [{"metadata": {"name": "a"}, "kind": KIND_POLICY}]
    args, _ = fake.calls[0]
    assert args[:2] == ["get", "sriovnetworknodepolicies.sriovnetwork.openshift.io"]
    assert ["-n", "op"] == args[2:4]
    assert args[-2:] == ["-l", "app=x"]


def test_force_delete_flags(monkeypatch):
    fake = FakeKubectl((True, "", ""))
    monkeypatch.setattr(store_module, "run_kubectl", fake)
    KubectlResourceStore().delete(KIND_POLICY, "e810c", "op", force=True)
    args, _ = fake.calls[0]
    assert "--grace-period=0" in args and "--force" in args


def test_create_retries_transient_errors(monkeypatch):
    manifest = new_resource(ResourceRef(KIND_POLICY, "e810c", "op"), spec={"numVfs": 2})
    fake = FakeKubectl(
        (False, "", "Error from server (InternalError): failed calling webhook: connection refused"),
        (True, json.dumps(manifest), ""),
    )
    monkeypatch.setattr(store_module, "run_kubectl", fake)
    monkeypatch.setattr(KubectlResourceStore.create.retry, "sleep", lambda seconds: None)
    assert KubectlResourceStore().create(manifest) == manifest
    assert len(fake.calls) == 2
    assert json.loads(fake.calls[0][1])["spec"] == {"numVfs": 2}


def test_create_does_not_retry_already_exists(monkeypatch):
    fake = FakeKubectl((False, "", 'Error from server (AlreadyExists): "e810c" already exists'))
    monkeypatch.setattr(store_module, "run_kubectl", fake)
    with pytest.raises(ResourceStoreError) as exc:
        KubectlResourceStore().create(new_resource(ResourceRef(KIND_POLICY, "e810c", "op")))
    assert exc.value.kind is ResourceErrorKind.ALREADY_EXISTS
    assert len(fake.calls) == 1
