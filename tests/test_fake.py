import pytest

from manifestguard.client import ApiError, NotFoundError, PatchType
from manifestguard.fake import FakeProfileClient, ProfileLister, parse_label_selector
from manifestguard.labels import LabelSelector
from manifestguard.profile import ManifestIntegrityProfile


def make_profile(name, labels=None):
    metadata = {"name": name}
    if labels:
        metadata["labels"] = labels
    return ManifestIntegrityProfile.from_dict({"metadata": metadata, "spec": {"match": {}}})


def test_create_then_get_round_trip():
    client = FakeProfileClient()
    created = client.create(make_profile("alpha", {"team": "a"}))
    fetched = client.get("alpha")
    assert fetched == created
    assert fetched.labels == {"team": "a"}


def test_get_returns_copy():
    client = FakeProfileClient([make_profile("alpha")])
    fetched = client.get("alpha")
    fetched.status.deny_count = 5
    assert client.get("alpha").status.deny_count == 0


def test_get_missing_raises_not_found():
    client = FakeProfileClient()
    with pytest.raises(NotFoundError) as info:
        client.get("missing")
    assert "missing" in info.value.message


def test_create_duplicate_conflicts():
    client = FakeProfileClient([make_profile("alpha")])
    with pytest.raises(ApiError) as info:
        client.create(make_profile("alpha"))
    assert info.value.status_code == 409


def test_list_filters_by_selector():
    client = FakeProfileClient(
        [make_profile("a", {"env": "prod"}), make_profile("b", {"env": "dev"}), make_profile("c")]
    )
    assert [p.name for p in client.list("env=prod")] == ["a"]
    assert [p.name for p in client.list("env!=prod")] == ["b", "c"]
    assert [p.name for p in client.list("env in (prod, dev)")] == ["a", "b"]
    assert [p.name for p in client.list("!env")] == ["c"]
    assert len(client.list()) == 3


def test_parse_selector_exists():
    selector = parse_label_selector("env")
    assert selector.matches({"env": "x"})
    assert not selector.matches({})


def test_update_missing_raises():
    client = FakeProfileClient()
    with pytest.raises(NotFoundError):
        client.update(make_profile("ghost"))


def test_update_status_replaces_profile_and_records_subresource():
    client = FakeProfileClient([make_profile("alpha")])
    profile = client.get("alpha")
    profile.status.deny_count = 2
    client.update_status(profile)
    assert client.get("alpha").status.deny_count == 2
    assert any(a.verb == "update" and a.subresource == "status" for a in client.actions)


def test_delete_and_delete_collection():
    client = FakeProfileClient(
        [make_profile("a", {"env": "prod"}), make_profile("b", {"env": "dev"}), make_profile("c")]
    )
    client.delete("c")
    with pytest.raises(NotFoundError):
        client.get("c")
    client.delete_collection("env=dev")
    assert [p.name for p in client.list()] == ["a"]


def test_merge_patch_sets_labels():
    client = FakeProfileClient([make_profile("alpha")])
    patched = client.patch("alpha", PatchType.MERGE, {"metadata": {"labels": {"k": "v"}}})
    assert patched.labels == {"k": "v"}
    assert client.get("alpha").labels == {"k": "v"}


def test_json_patch_from_string():
    client = FakeProfileClient([make_profile("alpha")])
    data = '[{"op": "add", "path": "/status/denyCount", "value": 3}]'
    patched = client.patch("alpha", PatchType.JSON, data, "status")
    assert patched.status.deny_count == 3
    assert client.actions[-1].subresource == "status"


def test_json_patch_replace_missing_key_fails():
    client = FakeProfileClient([make_profile("alpha")])
    with pytest.raises(ApiError):
        client.patch("alpha", PatchType.JSON, [{"op": "replace", "path": "/nope", "value": 1}])


def test_failures_are_raised_and_action_recorded():
    boom = ApiError(500, "boom")
    client = FakeProfileClient(failures={"list": boom})
    with pytest.raises(ApiError) as info:
        client.list()
    assert info.value is boom
    assert client.actions[0].verb == "list"


def test_namespace_labels_and_config_maps():
    client = FakeProfileClient(
        namespaces={"prod": {"tier": "gold"}},
        config_maps={("ns", "cfg"): {"config.yaml": "mode: detect"}},
    )
    assert client.namespace_labels("prod") == {"tier": "gold"}
    assert client.config_map_data("ns", "cfg") == {"config.yaml": "mode: detect"}
    with pytest.raises(NotFoundError):
        client.namespace_labels("other")
    with pytest.raises(NotFoundError):
        client.config_map_data("ns", "other")


def test_lister_get_and_list():
    lister = ProfileLister([make_profile("a", {"env": "prod"}), make_profile("b")])
    assert lister.get("a").name == "a"
    assert [p.name for p in lister.list()] == ["a", "b"]
    selector = LabelSelector(match_labels={"env": "prod"})
    assert [p.name for p in lister.list(selector)] == ["a"]


def test_lister_not_found_message():
    lister = ProfileLister()
    with pytest.raises(NotFoundError) as info:
        lister.get("x")
    assert info.value.message == 'manifestintegrityprofile.apis.integrityshield.io "x" not found'