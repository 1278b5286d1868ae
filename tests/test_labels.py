import pytest

from manifestguard.labels import InvalidSelectorError, LabelSelector, LabelSelectorRequirement


def test_empty_selector_matches_everything():
    assert LabelSelector().matches({"app": "web"}) is True
    assert LabelSelector.from_dict({}).matches({}) is True


def test_match_labels():
    selector = LabelSelector.from_dict({"matchLabels": {"app": "web"}})
    assert selector.matches({"app": "web", "tier": "front"}) is True
    assert selector.matches({"app": "db"}) is False
    assert selector.matches({}) is False


def test_in_and_not_in():
    selector = LabelSelector.from_dict(
        {
            "matchExpressions": [
                {"key": "env", "operator": "In", "values": ["dev", "test"]},
                {"key": "tier", "operator": "NotIn", "values": ["db"]},
            ]
        }
    )
    assert selector.matches({"env": "dev"}) is True
    assert selector.matches({"env": "dev", "tier": "db"}) is False
    assert selector.matches({"env": "prod"}) is False


def test_exists_and_does_not_exist():
    selector = LabelSelector(
        match_expressions=[
            LabelSelectorRequirement(key="signed", operator="Exists"),
            LabelSelectorRequirement(key="skip", operator="DoesNotExist"),
        ]
    )
    assert selector.matches({"signed": "yes"}) is True
    assert selector.matches({"signed": "yes", "skip": "1"}) is False
    assert selector.matches({}) is False


def test_none_labels_treated_as_empty():
    selector = LabelSelector.from_dict(
        {"matchExpressions": [{"key": "skip", "operator": "DoesNotExist"}]}
    )
    assert selector.matches(None) is True


def test_invalid_operator_raises():
    selector = LabelSelector.from_dict(
        {"matchExpressions": [{"key": "env", "operator": "Like", "values": ["x"]}]}
    )
    with pytest.raises(InvalidSelectorError):
        selector.matches({"env": "x"})


def test_in_without_values_raises():
    selector = LabelSelector.from_dict({"matchExpressions": [{"key": "env", "operator": "In"}]})
    with pytest.raises(InvalidSelectorError):
        selector.matches({"env": "x"})


def test_exists_with_values_raises():
    selector = LabelSelector(
        match_expressions=[LabelSelectorRequirement(key="env", operator="Exists", values=["x"])]
    )
    with pytest.raises(InvalidSelectorError):
        selector.matches({"env": "x"})


def test_from_dict_rejects_non_mapping():
    with pytest.raises(InvalidSelectorError):
        LabelSelector.from_dict("app=web")


def test_from_dict_none_gives_empty_selector():
    assert LabelSelector.from_dict(None) == LabelSelector()