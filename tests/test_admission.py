import json

import pytest

from manifestguard.admission import AdmissionRequest, allowed, denied
from manifestguard.config import GroupVersionKind

REQUEST = {
    "uid": "uid-1",
    "kind": {"group": "", "version": "v1", "kind": "ConfigMap"},
    "name": "test-cm",
    "namespace": "test-ns",
    "operation": "CREATE",
    "userInfo": {"username": "someone"},
    "object": {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "test-cm", "labels": {"app": "web"}},
    },
}


def test_from_dict_reads_fields():
    request = AdmissionRequest.from_dict(REQUEST)
    assert request.uid == "uid-1"
    assert request.kind == GroupVersionKind(group="", version="v1", kind="ConfigMap")
    assert request.name == "test-cm"
    assert request.namespace == "test-ns"
    assert request.operation == "CREATE"
    assert request.user_info == {"username": "someone"}
    assert request.raw == REQUEST


def test_from_dict_rejects_non_mapping():
    with pytest.raises(ValueError):
        AdmissionRequest.from_dict("request")


def test_object_labels_from_mapping():
    assert AdmissionRequest.from_dict(REQUEST).object_labels() == {"app": "web"}


def test_object_labels_from_raw_json():
    request = AdmissionRequest(object=json.dumps(REQUEST["object"]).encode())
    assert request.object_labels() == {"app": "web"}


def test_object_without_labels_gives_empty_mapping():
    request = AdmissionRequest(object={"metadata": {"name": "x"}})
    assert request.object_labels() == {}


def test_missing_object_raises():
    with pytest.raises(ValueError):
        AdmissionRequest().object_labels()


def test_invalid_json_object_raises():
    with pytest.raises(ValueError):
        AdmissionRequest(object=b"{not json").object_labels()


def test_allowed_response_review():
    review = allowed("this namespace is out of scope").to_review("uid-1")
    assert review["apiVersion"] == "admission.k8s.io/v1"
    assert review["kind"] == "AdmissionReview"
    assert review["response"]["uid"] == "uid-1"
    assert review["response"]["allowed"] is True
    assert review["response"]["status"]["reason"] == "this namespace is out of scope"


def test_denied_response_review():
    response = denied("[profile]no signature found")
    review = response.to_review("uid-2")
    assert response.allowed is False
    assert review["response"]["allowed"] is False
    assert review["response"]["status"]["code"] == response.code
    assert response.code != allowed("x").code


def test_empty_message_has_no_reason():
    review = allowed("").to_review("uid-3")
    assert "reason" not in review["response"]["status"]