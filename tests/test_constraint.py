import pytest

from manifestguard.admission import AdmissionRequest
from manifestguard.client import ApiError, NotFoundError
from manifestguard.constraint import (
    HandlerResult,
    Result,
    check_kind_match,
    check_label_match,
    check_namespace_label_match,
    check_namespace_match,
    load_constraints,
    match_check,
    update_constraint_status,
    update_constraints,
)
from manifestguard.fake import FakeProfileClient
from manifestguard.labels import LabelSelector, LabelSelectorRequirement
from manifestguard.profile import Kinds, ManifestIntegrityProfile, MatchCondition


def make_request(namespace="prod-a", kind="ConfigMap", group="", labels=None, obj=True):
    data = {
        "uid": "uid-1",
        "kind": {"group": group, "version": "v1", "kind": kind},
        "name": "cm1",
        "namespace": namespace,
        "operation": "CREATE",
    }
    if obj:
        data["object"] = {"metadata": {"name": "cm1", "labels": labels or {}}}
    return AdmissionRequest.from_dict(data)


def make_profile(name):
    return ManifestIntegrityProfile.from_dict({"metadata": {"name": name}})


def test_namespace_match_rules():
    assert check_namespace_match(make_request(), [])
    assert check_namespace_match(make_request(namespace=""), ["other"])
    assert check_namespace_match(make_request(namespace="prod-a"), ["prod-*"])
    assert not check_namespace_match(make_request(namespace="dev"), ["prod-*"])


def test_kind_match_rules():
    request = make_request(kind="ConfigMap")
    assert check_kind_match(request, [])
    assert check_kind_match(request, [Kinds(kinds=["ConfigMap"])])
    assert not check_kind_match(request, [Kinds(kinds=["Secret"])])
    deployment = make_request(kind="Deployment", group="apps")
    assert check_kind_match(deployment, [Kinds(kinds=["Deployment"], api_groups=["apps"])])
    assert not check_kind_match(request, [Kinds(api_groups=["apps"])])


def test_label_match_rules():
    request = make_request(labels={"app": "web"})
    assert check_label_match(request, None)
    assert check_label_match(request, LabelSelector(match_labels={"app": "web"}))
    assert not check_label_match(request, LabelSelector(match_labels={"app": "db"}))
    assert not check_label_match(make_request(obj=False), LabelSelector(match_labels={"app": "web"}))
    bogus = LabelSelector(match_expressions=[LabelSelectorRequirement("app", "Bogus")])
    assert not check_label_match(request, bogus)


def test_namespace_label_match_rules():
    client = FakeProfileClient(namespaces={"prod-a": {"tier": "gold"}})
    selector = LabelSelector(match_labels={"tier": "gold"})
    assert check_namespace_label_match("prod-a", None, None)
    assert check_namespace_label_match("prod-a", selector, client.namespace_labels)
    assert not check_namespace_label_match("missing", selector, client.namespace_labels)
    assert not check_namespace_label_match("prod-a", selector, None)


def test_match_check_excluded_namespace_wins():
    request = make_request(namespace="prod-a")
    assert match_check(request, MatchCondition(namespaces=["prod-*"]))
    condition = MatchCondition(namespaces=["prod-*"], excluded_namespaces=["prod-a"])
    assert not match_check(request, condition)


def test_match_check_requires_all_conditions():
    request = make_request(labels={"app": "web"})
    condition = MatchCondition(
        kinds=[Kinds(kinds=["ConfigMap"])],
        label_selector=LabelSelector(match_labels={"app": "db"}),
    )
    assert not match_check(request, condition)


def test_load_constraints():
    client = FakeProfileClient([make_profile("a"), make_profile("b")])
    assert [p.name for p in load_constraints(client)] == ["a", "b"]
    failing = FakeProfileClient(failures={"list": ApiError(500, "boom")})
    assert load_constraints(failing) == []
    assert load_constraints(None) == []


def test_update_constraint_status_records_violation():
    client = FakeProfileClient([make_profile("p1")])
    request = make_request()
    update_constraint_status(client, "p1", request, "no signature")
    stored = client.get("p1")
    assert stored.status.deny_count == 1
    assert stored.status.violations[0].message == "no signature"
    assert stored.status.violations[0].name == request.name


def test_update_constraint_status_missing_profile_raises():
    client = FakeProfileClient()
    with pytest.raises(NotFoundError):
        update_constraint_status(client, "ghost", make_request(), "msg")


def test_update_constraints_detect_mode_and_skips_allowed():
    client = FakeProfileClient([make_profile("p1"), make_profile("p2")])
    results = [
        Result(HandlerResult(allow=False, message="no signature"), profile="p1"),
        Result(HandlerResult(allow=True, message="ok"), profile="p2"),
        Result(HandlerResult(allow=False, message="x"), profile="ghost"),
    ]
    update_constraints(client, True, make_request(), results)
    assert client.get("p1").status.violations[0].message == "[Detection] no signature"
    assert client.get("p2").status.deny_count == 0


def test_update_constraints_enforce_mode_keeps_message():
    client = FakeProfileClient([make_profile("p1")])
    results = [Result(HandlerResult(allow=False, message="denied here"), profile="p1")]
    update_constraints(client, False, make_request(), results)
    assert client.get("p1").status.violations[0].message == "denied here"