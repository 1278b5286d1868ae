"""ManifestIntegrityProfile resources and their status history."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .admission import AdmissionRequest
from .labels import LabelSelector

GROUP_NAME = "apis.integrityshield.io"
VERSION = "v1"
API_VERSION = f"{GROUP_NAME}/{VERSION}"
KIND = "ManifestIntegrityProfile"
PLURAL = "manifestintegrityprofiles"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_HISTORY_LENGTH = 10


@dataclass(frozen=True)
class GroupKind:
    """A kind qualified by its API group."""

    group: str
    kind: str


@dataclass(frozen=True)
class GroupResource:
    """A resource qualified by its API group."""

    group: str
    resource: str


def kind(name: str) -> GroupKind:
    """Qualify an unqualified kind with the profile API group."""
    return GroupKind(group=GROUP_NAME, kind=name)


def resource(name: str) -> GroupResource:
    """Qualify an unqualified resource with the profile API group."""
    return GroupResource(group=GROUP_NAME, resource=name)


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a mapping, not {type(data).__name__}")
    return data


def _strings(data: Any, what: str) -> list[str]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"{what} must be a list, not {type(data).__name__}")
    return [str(item) for item in data]


def _optional_selector(values: Mapping[str, Any], key: str) -> LabelSelector | None:
    if values.get(key) is None:
        return None
    return LabelSelector.from_dict(values[key])


def _selector_to_dict(selector: LabelSelector) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if selector.match_labels:
        out["matchLabels"] = dict(selector.match_labels)
    if selector.match_expressions:
        expressions = []
        for requirement in selector.match_expressions:
            expression: dict[str, Any] = {
                "key": requirement.key,
                "operator": requirement.operator,
            }
            if requirement.values:
                expression["values"] = list(requirement.values)
            expressions.append(expression)
        out["matchExpressions"] = expressions
    return out


@dataclass
class Kinds:
    """Kinds and API groups a profile applies to; empty lists match anything."""

    kinds: list[str] = field(default_factory=list)
    api_groups: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Kinds:
        values = _mapping(data, "kinds entry")
        return cls(
            kinds=_strings(values.get("kinds"), "kinds"),
            api_groups=_strings(values.get("apiGroups"), "apiGroups"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.kinds:
            out["kinds"] = list(self.kinds)
        if self.api_groups:
            out["apiGroups"] = list(self.api_groups)
        return out


@dataclass
class MatchCondition:
    """Which requests a profile applies to."""

    kinds: list[Kinds] = field(default_factory=list)
    namespaces: list[str] = field(default_factory=list)
    excluded_namespaces: list[str] = field(default_factory=list)
    label_selector: LabelSelector | None = None
    namespace_selector: LabelSelector | None = None

    @classmethod
    def from_dict(cls, data: Any) -> MatchCondition:
        values = _mapping(data, "match")
        kinds = values.get("kinds")
        if kinds is not None and not isinstance(kinds, list):
            raise ValueError("match.kinds must be a list")
        return cls(
            kinds=[Kinds.from_dict(item) for item in kinds or []],
            namespaces=_strings(values.get("namespaces"), "namespaces"),
            excluded_namespaces=_strings(
                values.get("excludedNamespaces"), "excludedNamespaces"
            ),
            label_selector=_optional_selector(values, "labelSelector"),
            namespace_selector=_optional_selector(values, "namespaceSelector"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.kinds:
            out["kinds"] = [item.to_dict() for item in self.kinds]
        if self.namespaces:
            out["namespaces"] = list(self.namespaces)
        if self.excluded_namespaces:
            out["excludedNamespaces"] = list(self.excluded_namespaces)
        if self.label_selector is not None:
            out["labelSelector"] = _selector_to_dict(self.label_selector)
        if self.namespace_selector is not None:
            out["namespaceSelector"] = _selector_to_dict(self.namespace_selector)
        return out


@dataclass
class ViolationDetail:
    """One denied request recorded in a profile's status."""

    namespace: str = ""
    kind: str = ""
    name: str = ""
    message: str = ""
    timestamp: str = ""

    _KEYS = ("namespace", "kind", "name", "message", "timestamp")

    @classmethod
    def from_dict(cls, data: Any) -> ViolationDetail:
        values = _mapping(data, "violation")
        return cls(**{key: str(values.get(key, "") or "") for key in cls._KEYS})

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in self._KEYS if getattr(self, key)}


@dataclass
class ProfileStatus:
    """Observed state of a profile: how often it denied and the latest violations."""

    deny_count: int = 0
    violations: list[ViolationDetail] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ProfileStatus:
        values = _mapping(data, "status")
        violations = values.get("violations")
        if violations is not None and not isinstance(violations, list):
            raise ValueError("status.violations must be a list")
        return cls(
            deny_count=int(values.get("denyCount", 0) or 0),
            violations=[ViolationDetail.from_dict(item) for item in violations or []],
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.deny_count:
            out["denyCount"] = self.deny_count
        if self.violations:
            out["violations"] = [item.to_dict() for item in self.violations]
        return out


@dataclass
class ProfileSpec:
    """Desired state of a profile: match condition and verification parameters."""

    match: MatchCondition = field(default_factory=MatchCondition)
    parameters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> ProfileSpec:
        values = _mapping(data, "spec")
        return cls(
            match=MatchCondition.from_dict(values.get("match")),
            parameters=copy.deepcopy(dict(_mapping(values.get("parameters"), "parameters"))),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"match": self.match.to_dict()}
        if self.parameters:
            out["parameters"] = copy.deepcopy(self.parameters)
        return out


@dataclass
class ManifestIntegrityProfile:
    """A cluster-scoped profile describing which manifests must be signed."""

    name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    spec: ProfileSpec = field(default_factory=ProfileSpec)
    status: ProfileStatus = field(default_factory=ProfileStatus)
    api_version: str = API_VERSION
    kind: str = KIND

    @property
    def labels(self) -> dict[str, str]:
        """Labels from the profile's metadata."""
        return {str(k): str(v) for k, v in (self.metadata.get("labels") or {}).items()}

    @classmethod
    def from_dict(cls, data: Any) -> ManifestIntegrityProfile:
        """Build a profile from its decoded resource document."""
        values = _mapping(data, "profile")
        metadata = copy.deepcopy(dict(_mapping(values.get("metadata"), "metadata")))
        name = str(metadata.pop("name", "") or "")
        return cls(
            name=name,
            metadata=metadata,
            spec=ProfileSpec.from_dict(values.get("spec")),
            status=ProfileStatus.from_dict(values.get("status")),
            api_version=str(values.get("apiVersion") or API_VERSION),
            kind=str(values.get("kind") or KIND),
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the profile as a resource document."""
        metadata: dict[str, Any] = {"name": self.name} if self.name else {}
        metadata.update(copy.deepcopy(self.metadata))
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    def update_status(
        self,
        request: AdmissionRequest,
        message: str,
        now: datetime | None = None,
    ) -> ManifestIntegrityProfile:
        """Record a denied request: bump the deny count and prepend a violation.

        Only the newest violations are kept. Returns the profile itself.
        """
        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        self.status.deny_count += 1
        violation = ViolationDetail(
            namespace=request.namespace,
            kind=request.kind.kind,
            name=request.name,
            message=message,
            timestamp=moment.strftime(TIMESTAMP_FORMAT),
        )
        self.status.violations = [violation, *self.status.violations][:MAX_HISTORY_LENGTH]
        return self