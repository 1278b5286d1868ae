"""Admission requests and responses exchanged with the API server."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .config import GroupVersionKind

REVIEW_API_VERSION = "admission.k8s.io/v1"
REVIEW_KIND = "AdmissionReview"
_STATUS_OK = 200
_STATUS_FORBIDDEN = 403


@dataclass
class AdmissionRequest:
    """The request part of an AdmissionReview."""

    uid: str = ""
    kind: GroupVersionKind = field(default_factory=GroupVersionKind)
    name: str = ""
    namespace: str = ""
    operation: str = ""
    user_info: dict[str, Any] = field(default_factory=dict)
    object: Any = None
    old_object: Any = None
    dry_run: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> AdmissionRequest:
        """Build a request from the decoded ``request`` field of a review."""
        if not isinstance(data, Mapping):
            raise ValueError("admission request must be a mapping")
        kind = data.get("kind") or {}
        if not isinstance(kind, Mapping):
            raise ValueError("admission request kind must be a mapping")
        return cls(
            uid=str(data.get("uid", "") or ""),
            kind=GroupVersionKind(
                group=str(kind.get("group", "") or ""),
                version=str(kind.get("version", "") or ""),
                kind=str(kind.get("kind", "") or ""),
            ),
            name=str(data.get("name", "") or ""),
            namespace=str(data.get("namespace", "") or ""),
            operation=str(data.get("operation", "") or ""),
            user_info=dict(data.get("userInfo") or {}),
            object=data.get("object"),
            old_object=data.get("oldObject"),
            dry_run=bool(data.get("dryRun", False)),
            raw=dict(data),
        )

    def object_labels(self) -> dict[str, str]:
        """Labels of the requested object.

        Raises ValueError if the object is missing or not a JSON object.
        """
        obj = self.object
        if isinstance(obj, (bytes, bytearray, str)):
            try:
                obj = json.loads(obj)
            except ValueError as exc:
                raise ValueError(f"requested object is not valid JSON: {exc}") from exc
        if not isinstance(obj, Mapping):
            raise ValueError("requested object is not a JSON object")
        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            return {}
        labels = metadata.get("labels") or {}
        if not isinstance(labels, Mapping):
            return {}
        return {str(key): str(value) for key, value in labels.items()}


@dataclass(frozen=True)
class AdmissionResponse:
    """Decision on an admission request."""

    allowed: bool
    message: str = ""

    @property
    def code(self) -> int:
        """HTTP-style status code carried in the review result."""
        return _STATUS_OK if self.allowed else _STATUS_FORBIDDEN

    def to_review(self, uid: str) -> dict[str, Any]:
        """Render an AdmissionReview answering the request with ``uid``."""
        status: dict[str, Any] = {"code": self.code}
        if self.message:
            status["reason"] = self.message
        return {
            "apiVersion": REVIEW_API_VERSION,
            "kind": REVIEW_KIND,
            "response": {"uid": uid, "allowed": self.allowed, "status": status},
        }


def allowed(message: str) -> AdmissionResponse:
    """A response allowing the request."""
    return AdmissionResponse(allowed=True, message=message)


def denied(message: str) -> AdmissionResponse:
    """A response denying the request."""
    return AdmissionResponse(allowed=False, message=message)