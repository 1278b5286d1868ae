"""In-memory stand-ins for the profile client and a read-only profile lister."""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .client import ApiError, NotFoundError, PatchType
from .labels import (
    DOES_NOT_EXIST,
    EXISTS,
    IN,
    NOT_IN,
    InvalidSelectorError,
    LabelSelector,
    LabelSelectorRequirement,
)
from .profile import PLURAL, ManifestIntegrityProfile, resource

_SET_TERM = re.compile(r"(\S+)\s+(in|notin)\s+\((.*)\)")
_TERM_SEPARATOR = re.compile(r",(?![^()]*\))")


@dataclass
class Action:
    """One call recorded by the fake client."""

    verb: str
    resource: str = PLURAL
    name: str = ""
    subresource: str = ""
    label_selector: str | None = None
    object: ManifestIntegrityProfile | None = None
    patch_type: str = ""
    data: Any = None


def parse_label_selector(text: str | None) -> LabelSelector:
    """Parse a selector string such as ``app=web,tier in (a,b),!debug``."""
    if not text or not text.strip():
        return LabelSelector()
    requirements = []
    for term in (part.strip() for part in _TERM_SEPARATOR.split(text)):
        if not term:
            continue
        set_match = _SET_TERM.fullmatch(term)
        if set_match:
            key, operator, values = set_match.groups()
            requirements.append(
                LabelSelectorRequirement(
                    key=key,
                    operator=IN if operator == "in" else NOT_IN,
                    values=[value.strip() for value in values.split(",") if value.strip()],
                )
            )
        elif term.startswith("!"):
            requirements.append(LabelSelectorRequirement(key=term[1:].strip(), operator=DOES_NOT_EXIST))
        elif "!=" in term:
            key, value = term.split("!=", 1)
            requirements.append(LabelSelectorRequirement(key.strip(), NOT_IN, [value.strip()]))
        elif "=" in term:
            key, value = re.split(r"==?", term, maxsplit=1)
            requirements.append(LabelSelectorRequirement(key.strip(), IN, [value.strip()]))
        elif re.fullmatch(r"[\w./-]+", term):
            requirements.append(LabelSelectorRequirement(key=term, operator=EXISTS))
        else:
            raise InvalidSelectorError(f"cannot parse selector term {term!r}")
    return LabelSelector(match_expressions=requirements)


def _merge_patch(target: Any, patch: Any) -> Any:
    if not isinstance(patch, Mapping):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, Mapping) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


def _pointer_tokens(path: str) -> list[str]:
    if path == "":
        return []
    if not path.startswith("/"):
        raise ApiError(422, f"invalid JSON pointer {path!r}")
    return [token.replace("~1", "/").replace("~0", "~") for token in path[1:].split("/")]


def _resolve(document: Any, tokens: list[str]) -> Any:
    node = document
    for token in tokens:
        try:
            node = node[int(token)] if isinstance(node, list) else node[token]
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            raise ApiError(422, f"path element {token!r} does not exist") from exc
    return node


def _json_patch(document: Any, operations: Any) -> Any:
    if not isinstance(operations, list):
        raise ApiError(422, "a JSON patch must be a list of operations")
    result = copy.deepcopy(document)
    for operation in operations:
        op = operation.get("op")
        tokens = _pointer_tokens(str(operation.get("path", "")))
        value = copy.deepcopy(operation.get("value"))
        if op not in ("add", "replace", "remove"):
            raise ApiError(422, f"unsupported patch operation {op!r}")
        if not tokens:
            if op == "remove":
                raise ApiError(422, "cannot remove the whole document")
            result = value
            continue
        parent = _resolve(result, tokens[:-1])
        key = tokens[-1]
        if isinstance(parent, list):
            if op == "add" and key == "-":
                parent.append(value)
                continue
            try:
                index = int(key)
            except ValueError as exc:
                raise ApiError(422, f"invalid list index {key!r}") from exc
            if op == "add":
                if not 0 <= index <= len(parent):
                    raise ApiError(422, f"list index {index} out of range")
                parent.insert(index, value)
            elif not 0 <= index < len(parent):
                raise ApiError(422, f"list index {index} out of range")
            elif op == "replace":
                parent[index] = value
            else:
                del parent[index]
        elif isinstance(parent, dict):
            if op == "add":
                parent[key] = value
            elif key not in parent:
                raise ApiError(422, f"path element {key!r} does not exist")
            elif op == "replace":
                parent[key] = value
            else:
                del parent[key]
        else:
            raise ApiError(422, f"cannot patch into {type(parent).__name__}")
    return result


def _not_found(name: str) -> NotFoundError:
    qualified = resource("manifestintegrityprofile")
    return NotFoundError(404, f'{qualified.resource}.{qualified.group} "{name}" not found', "NotFound")


class FakeProfileClient:
    """A profile client backed by dictionaries, recording every call it receives.

    ``failures`` maps a verb (``get``, ``list``, ``update`` ...) to an exception
    raised whenever that verb is invoked.
    """

    def __init__(
        self,
        profiles: Iterable[ManifestIntegrityProfile] = (),
        namespaces: Mapping[str, Mapping[str, str]] | None = None,
        config_maps: Mapping[tuple[str, str], Mapping[str, str]] | None = None,
        failures: Mapping[str, Exception] | None = None,
    ) -> None:
        self.profiles: dict[str, ManifestIntegrityProfile] = {
            profile.name: copy.deepcopy(profile) for profile in profiles
        }
        self.namespaces = {name: dict(labels) for name, labels in (namespaces or {}).items()}
        self.config_maps = {key: dict(data) for key, data in (config_maps or {}).items()}
        self.failures = dict(failures or {})
        self.actions: list[Action] = []

    def _invoke(self, action: Action) -> None:
        self.actions.append(action)
        failure = self.failures.get(action.verb)
        if failure is not None:
            raise failure

    def _stored(self, name: str) -> ManifestIntegrityProfile:
        try:
            return self.profiles[name]
        except KeyError:
            raise _not_found(name) from None

    def get(self, name: str) -> ManifestIntegrityProfile:
        """Return a copy of the stored profile ``name``."""
        self._invoke(Action("get", name=name))
        return copy.deepcopy(self._stored(name))

    def list(self, label_selector: str | None = None) -> list[ManifestIntegrityProfile]:
        """Return copies of the stored profiles whose labels match the selector."""
        self._invoke(Action("list", label_selector=label_selector))
        selector = parse_label_selector(label_selector)
        return [
            copy.deepcopy(profile)
            for profile in self.profiles.values()
            if selector.matches(profile.labels)
        ]

    def create(self, profile: ManifestIntegrityProfile) -> ManifestIntegrityProfile:
        """Store a new profile; an existing name is a conflict."""
        self._invoke(Action("create", name=profile.name, object=copy.deepcopy(profile)))
        if profile.name in self.profiles:
            qualified = resource("manifestintegrityprofile")
            raise ApiError(
                409,
                f'{qualified.resource}.{qualified.group} "{profile.name}" already exists',
                "AlreadyExists",
            )
        self.profiles[profile.name] = copy.deepcopy(profile)
        return copy.deepcopy(profile)

    def update(self, profile: ManifestIntegrityProfile) -> ManifestIntegrityProfile:
        """Replace a stored profile."""
        self._invoke(Action("update", name=profile.name, object=copy.deepcopy(profile)))
        self._stored(profile.name)
        self.profiles[profile.name] = copy.deepcopy(profile)
        return copy.deepcopy(profile)

    def update_status(self, profile: ManifestIntegrityProfile) -> ManifestIntegrityProfile:
        """Replace a stored profile through its status subresource."""
        self._invoke(
            Action("update", name=profile.name, subresource="status", object=copy.deepcopy(profile))
        )
        self._stored(profile.name)
        self.profiles[profile.name] = copy.deepcopy(profile)
        return copy.deepcopy(profile)

    def delete(self, name: str) -> None:
        """Remove a stored profile."""
        self._invoke(Action("delete", name=name))
        self._stored(name)
        del self.profiles[name]

    def delete_collection(self, label_selector: str | None = None) -> None:
        """Remove every stored profile whose labels match the selector."""
        self._invoke(Action("delete-collection", label_selector=label_selector))
        selector = parse_label_selector(label_selector)
        for name in [n for n, p in self.profiles.items() if selector.matches(p.labels)]:
            del self.profiles[name]

    def patch(
        self,
        name: str,
        patch_type: PatchType | str,
        data: Any,
        *args: str,
    ) -> ManifestIntegrityProfile:
        """Apply a JSON, merge or strategic-merge patch to a stored profile."""
        kind = PatchType(patch_type)
        self._invoke(
            Action("patch", name=name, subresource="/".join(args), patch_type=kind.value, data=data)
        )
        current = self._stored(name).to_dict()
        payload = json.loads(data) if isinstance(data, (bytes, str)) else copy.deepcopy(data)
        if kind is PatchType.JSON:
            patched = _json_patch(current, payload)
        elif kind in (PatchType.MERGE, PatchType.STRATEGIC_MERGE):
            patched = _merge_patch(current, payload)
        else:
            raise ApiError(415, f"patch type {kind.value} is not supported")
        profile = ManifestIntegrityProfile.from_dict(patched)
        profile.name = name
        self.profiles[name] = profile
        return copy.deepcopy(profile)

    def namespace_labels(self, namespace: str) -> dict[str, str]:
        """Labels of a known namespace."""
        self._invoke(Action("get", resource="namespaces", name=namespace))
        try:
            return dict(self.namespaces[namespace])
        except KeyError:
            raise NotFoundError(404, f'namespaces "{namespace}" not found', "NotFound") from None

    def config_map_data(self, namespace: str, name: str) -> dict[str, str]:
        """Data of a known ConfigMap."""
        self._invoke(Action("get", resource="configmaps", name=name))
        try:
            return dict(self.config_maps[(namespace, name)])
        except KeyError:
            raise NotFoundError(404, f'configmaps "{name}" not found', "NotFound") from None


class ProfileLister:
    """Read-only view over a fixed set of profiles, indexed by name."""

    def __init__(self, profiles: Iterable[ManifestIntegrityProfile] = ()) -> None:
        self._index = {profile.name: profile for profile in profiles}

    def list(self, selector: LabelSelector | None = None) -> list[ManifestIntegrityProfile]:
        """Profiles whose labels match ``selector``; all of them when it is None."""
        if selector is None:
            return list(self._index.values())
        return [profile for profile in self._index.values() if selector.matches(profile.labels)]

    def get(self, name: str) -> ManifestIntegrityProfile:
        """The profile called ``name``; raises NotFoundError if absent."""
        try:
            return self._index[name]
        except KeyError:
            raise _not_found(name) from None