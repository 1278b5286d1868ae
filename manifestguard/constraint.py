"""Selecting the profiles that apply to a request and recording their denials."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import requests

from .admission import AdmissionRequest
from .client import ApiError
from .labels import InvalidSelectorError, LabelSelector
from .patterns import match_pattern
from .profile import Kinds, ManifestIntegrityProfile, MatchCondition

logger = logging.getLogger(__name__)

NamespaceLabels = Callable[[str], Mapping[str, str]]

_LOOKUP_ERRORS = (ApiError, requests.RequestException, OSError, ValueError)


@dataclass
class HandlerResult:
    """Outcome of verifying a request against one profile."""

    allow: bool
    message: str = ""


@dataclass
class Result:
    """A handler result together with the profile that produced it."""

    handler_result: HandlerResult
    profile: str = ""


def load_constraints(client: Any) -> list[ManifestIntegrityProfile]:
    """All profiles known to ``client``; an empty list if they cannot be read."""
    if client is None:
        return []
    try:
        return list(client.list())
    except _LOOKUP_ERRORS as exc:
        logger.error("failed to get ManifestIntegrityProfiles: %s", exc)
        return []


def match_check(
    request: AdmissionRequest,
    match: MatchCondition,
    namespace_labels: NamespaceLabels | None = None,
) -> bool:
    """Return True if ``request`` falls under ``match``."""
    if any(match_pattern(pattern, request.namespace) for pattern in match.excluded_namespaces):
        return False
    return (
        check_namespace_match(request, match.namespaces)
        and check_kind_match(request, match.kinds)
        and check_namespace_label_match(
            request.namespace, match.namespace_selector, namespace_labels
        )
        and check_label_match(request, match.label_selector)
    )


def check_namespace_label_match(
    namespace: str,
    selector: LabelSelector | None,
    namespace_labels: NamespaceLabels | None,
) -> bool:
    """Return True if the namespace's labels satisfy ``selector``."""
    if selector is None:
        return True
    if namespace_labels is None:
        return False
    try:
        labels = namespace_labels(namespace)
    except _LOOKUP_ERRORS as exc:
        logger.error("failed to get a namespace `%s`: %s", namespace, exc)
        return False
    try:
        return selector.matches(labels)
    except InvalidSelectorError as exc:
        logger.error("failed to convert the label selector; %s", exc)
        return False


def check_label_match(request: AdmissionRequest, selector: LabelSelector | None) -> bool:
    """Return True if the requested object's labels satisfy ``selector``."""
    if selector is None:
        return True
    try:
        labels = request.object_labels()
    except ValueError as exc:
        logger.error("failed to read labels of the requested object; %s", exc)
        return False
    try:
        return selector.matches(labels)
    except InvalidSelectorError as exc:
        logger.error("failed to convert the label selector; %s", exc)
        return False


def check_namespace_match(request: AdmissionRequest, namespaces: Iterable[str]) -> bool:
    """Return True if no namespaces are given, the request is cluster-scoped, or one matches."""
    patterns = list(namespaces)
    if not patterns or request.namespace == "":
        return True
    return any(match_pattern(pattern, request.namespace) for pattern in patterns)


def _kinds_entry_matches(request: AdmissionRequest, entry: Kinds) -> bool:
    kind_ok = not entry.kinds or any(
        match_pattern(pattern, request.kind.kind) for pattern in entry.kinds
    )
    group_ok = not entry.api_groups or any(
        match_pattern(pattern, request.kind.group) for pattern in entry.api_groups
    )
    return kind_ok and group_ok


def check_kind_match(request: AdmissionRequest, kinds: Iterable[Kinds]) -> bool:
    """Return True if no kinds are given or any entry matches the request's kind and group."""
    entries = list(kinds)
    if not entries:
        return True
    return any(_kinds_entry_matches(request, entry) for entry in entries)


def update_constraint_status(
    client: Any, name: str, request: AdmissionRequest, message: str
) -> ManifestIntegrityProfile:
    """Record a denied request in the status of profile ``name`` and store it."""
    try:
        profile = client.get(name)
    except _LOOKUP_ERRORS as exc:
        logger.error("failed to get ManifestIntegrityProfile %s: %s", name, exc)
        raise
    updated = profile.update_status(request, message)
    try:
        return client.update(updated)
    except _LOOKUP_ERRORS as exc:
        logger.error("failed to update ManifestIntegrityProfile status: %s", exc)
        raise


def update_constraints(
    client: Any, detect_mode: bool, request: AdmissionRequest, results: Iterable[Result]
) -> None:
    """Update the status of every profile that denied the request; errors are logged."""
    for result in results:
        if result.handler_result.allow:
            continue
        message = result.handler_result.message
        if detect_mode:
            message = "[Detection] " + message
        try:
            update_constraint_status(client, result.profile, request, message)
        except _LOOKUP_ERRORS:
            pass
        logger.debug(
            "updated constraint status: %s (namespace=%s name=%s kind=%s operation=%s)",
            result.profile,
            request.namespace,
            request.name,
            request.kind.kind,
            request.operation,
        )