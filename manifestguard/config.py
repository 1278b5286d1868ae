"""Configuration of the admission controller."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from .patterns import match_single_pattern, match_with_pattern_array

DETECT_MODE = "detect"


@dataclass(frozen=True)
class GroupVersionKind:
    """API group, version and kind of a resource."""

    group: str = ""
    version: str = ""
    kind: str = ""


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a mapping, not {type(data).__name__}")
    return data


def _string_list(data: Any, what: str) -> list[str]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"{what} must be a list, not {type(data).__name__}")
    return [str(item) for item in data]


def _gvk_from_dict(data: Any) -> GroupVersionKind:
    values = _mapping(data, "kind")
    return GroupVersionKind(
        group=str(values.get("group", "") or ""),
        version=str(values.get("version", "") or ""),
        kind=str(values.get("kind", "") or ""),
    )


@dataclass
class NamespaceSelector:
    """Namespaces to include and exclude, given as patterns."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)

    def match(self, namespace: str) -> bool:
        """Return True if ``namespace`` is included and not excluded."""
        excluded = bool(self.exclude) and match_with_pattern_array(namespace, self.exclude)
        included = match_with_pattern_array(namespace, self.include) if self.include else True
        return included and not excluded


@dataclass
class Allow:
    """Kinds that are always allowed without verification."""

    kinds: list[GroupVersionKind] = field(default_factory=list)

    def match(self, kind: GroupVersionKind) -> bool:
        """Return True if ``kind`` matches any allowed kind; empty fields match anything."""
        for allowed in self.kinds:
            group_ok = allowed.group == "" or match_single_pattern(allowed.group, kind.group)
            kind_ok = allowed.kind == "" or match_single_pattern(allowed.kind, kind.kind)
            version_ok = allowed.version == "" or match_single_pattern(
                allowed.version, kind.version
            )
            if group_ok and kind_ok and version_ok:
                return True
        return False


@dataclass
class SideEffectConfig:
    """Side effects performed while handling requests."""

    update_mip_status_for_denied_request: bool = False


@dataclass
class AdmissionControllerConfig:
    """Whole admission controller configuration."""

    in_scope_namespace_selector: NamespaceSelector = field(default_factory=NamespaceSelector)
    allow: Allow = field(default_factory=Allow)
    side_effect: SideEffectConfig = field(default_factory=SideEffectConfig)
    mode: str = ""
    options: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> AdmissionControllerConfig:
        """Build a configuration from its decoded document."""
        values = _mapping(data, "config")
        selector = _mapping(values.get("inScopeNamespaceSelector"), "inScopeNamespaceSelector")
        allow = _mapping(values.get("allow"), "allow")
        side_effect = _mapping(values.get("sideEffect"), "sideEffect")
        kinds = allow.get("kinds")
        if kinds is not None and not isinstance(kinds, list):
            raise ValueError("allow.kinds must be a list")
        return cls(
            in_scope_namespace_selector=NamespaceSelector(
                include=_string_list(selector.get("include"), "include"),
                exclude=_string_list(selector.get("exclude"), "exclude"),
            ),
            allow=Allow(kinds=[_gvk_from_dict(item) for item in kinds or []]),
            side_effect=SideEffectConfig(
                update_mip_status_for_denied_request=bool(
                    side_effect.get("updateMIPStatusForDeniedRequest", False)
                )
            ),
            mode=str(values.get("mode", "") or ""),
            options=_string_list(values.get("option"), "option"),
        )


def load_config(text: str) -> AdmissionControllerConfig:
    """Parse a YAML configuration document."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse admission controller config: {exc}") from exc
    return AdmissionControllerConfig.from_dict(data)


def check_if_detect_only(mode: str) -> bool:
    """Return True if ``mode`` only reports violations instead of denying."""
    return mode == DETECT_MODE