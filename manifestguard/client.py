"""HTTP client for ManifestIntegrityProfile resources and the few core reads needed."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import quote

import requests

from .profile import GROUP_NAME, PLURAL, VERSION, ManifestIntegrityProfile

DEFAULT_USER_AGENT = "manifestguard"
SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"


class PatchType(str, Enum):
    """Patch formats understood by the API server."""

    JSON = "application/json-patch+json"
    MERGE = "application/merge-patch+json"
    STRATEGIC_MERGE = "application/strategic-merge-patch+json"
    APPLY = "application/apply-patch+yaml"


class ApiError(Exception):
    """The API server answered with an error."""

    def __init__(self, status_code: int, message: str, reason: str = "") -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.reason = reason


class NotFoundError(ApiError):
    """The requested object does not exist."""


@dataclass
class ClientConfig:
    """Where the API server is and how to authenticate to it."""

    host: str
    token: str | None = None
    ca_file: str | None = None
    insecure: bool = False
    timeout: float | None = 30.0
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def verify(self) -> bool | str:
        """TLS verification setting for requests."""
        if self.insecure:
            return False
        return self.ca_file or True

    @classmethod
    def in_cluster(
        cls,
        env: Mapping[str, str] | None = None,
        directory: str | os.PathLike[str] = SERVICE_ACCOUNT_DIR,
    ) -> ClientConfig:
        """Configuration from the service account mounted into a pod.

        Raises ValueError outside a cluster.
        """
        environ = os.environ if env is None else env
        host = environ.get("KUBERNETES_SERVICE_HOST", "")
        port = environ.get("KUBERNETES_SERVICE_PORT", "")
        if not host or not port:
            raise ValueError("not running inside a cluster: service host or port is unset")
        if ":" in host:
            host = f"[{host}]"
        base = Path(directory)
        token = (base / "token").read_text().strip()
        ca_path = base / "ca.crt"
        return cls(
            host=f"https://{host}:{port}",
            token=token,
            ca_file=str(ca_path) if ca_path.exists() else None,
        )


def _error_from(response: requests.Response) -> ApiError:
    message = response.reason or "request failed"
    reason = ""
    try:
        body = response.json()
    except ValueError:
        if response.text:
            message = response.text
    else:
        if isinstance(body, Mapping):
            message = str(body.get("message") or message)
            reason = str(body.get("reason") or "")
    error_class = NotFoundError if response.status_code == 404 else ApiError
    return error_class(response.status_code, message, reason)


def _selector_params(label_selector: str | None) -> dict[str, str]:
    return {"labelSelector": label_selector} if label_selector else {}


class ProfileClient:
    """Reads and writes ManifestIntegrityProfiles through the API server."""

    def __init__(self, config: ClientConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = config.user_agent
        self._session.headers["Accept"] = "application/json"
        if config.token:
            self._session.headers["Authorization"] = f"Bearer {config.token}"
        self._session.verify = config.verify

    def _url(self, *parts: str) -> str:
        path = "/".join(quote(part, safe="") for part in parts if part)
        return f"{self.config.host.rstrip('/')}/{path}"

    def _profile_url(self, *parts: str) -> str:
        return self._url("apis", GROUP_NAME, VERSION, PLURAL, *parts)

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        response = self._session.request(method, url, timeout=self.config.timeout, **kwargs)
        if not response.ok:
            raise _error_from(response)
        return response

    def _json(self, method: str, url: str, **kwargs: Any) -> Mapping[str, Any]:
        response = self._request(method, url, **kwargs)
        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, f"invalid JSON in response: {exc}") from exc
        if not isinstance(body, Mapping):
            raise ApiError(response.status_code, "response is not a JSON object")
        return body

    def _profile(self, method: str, url: str, **kwargs: Any) -> ManifestIntegrityProfile:
        return ManifestIntegrityProfile.from_dict(self._json(method, url, **kwargs))

    def get(self, name: str) -> ManifestIntegrityProfile:
        """Fetch the profile called ``name``."""
        return self._profile("GET", self._profile_url(name))

    def list(self, label_selector: str | None = None) -> list[ManifestIntegrityProfile]:
        """List profiles, optionally restricted by a label selector string."""
        body = self._json("GET", self._profile_url(), params=_selector_params(label_selector))
        return [ManifestIntegrityProfile.from_dict(item) for item in body.get("items") or []]

    def watch(
        self, label_selector: str | None = None
    ) -> Iterator[tuple[str, ManifestIntegrityProfile]]:
        """Yield ``(event type, profile)`` pairs as the server reports changes."""
        params = {"watch": "true", **_selector_params(label_selector)}
        with self._request("GET", self._profile_url(), params=params, stream=True) as response:
            for line in response.iter_lines():
                if not line:
                    continue
                event = json.loads(line)
                event_type = str(event.get("type", ""))
                obj = event.get("object") or {}
                if event_type == "ERROR":
                    raise ApiError(int(obj.get("code", 500)), str(obj.get("message", "")))
                yield event_type, ManifestIntegrityProfile.from_dict(obj)

    def create(self, profile: ManifestIntegrityProfile) -> ManifestIntegrityProfile:
        """Create ``profile`` and return the server's copy."""
        return self._profile("POST", self._profile_url(), json=profile.to_dict())

    def update(self, profile: ManifestIntegrityProfile) -> ManifestIntegrityProfile:
        """Replace the stored profile with ``profile``."""
        return self._profile("PUT", self._profile_url(profile.name), json=profile.to_dict())

    def update_status(self, profile: ManifestIntegrityProfile) -> ManifestIntegrityProfile:
        """Replace the status subresource of ``profile``."""
        return self._profile(
            "PUT", self._profile_url(profile.name, "status"), json=profile.to_dict()
        )

    def delete(self, name: str) -> None:
        """Delete the profile called ``name``."""
        self._request("DELETE", self._profile_url(name))

    def delete_collection(self, label_selector: str | None = None) -> None:
        """Delete every profile matching the label selector."""
        self._request("DELETE", self._profile_url(), params=_selector_params(label_selector))

    def patch(
        self,
        name: str,
        patch_type: PatchType | str,
        data: Any,
        *args: str,
    ) -> ManifestIntegrityProfile:
        """Apply a patch to ``name``; extra arguments name a subresource path."""
        content_type = PatchType(patch_type).value
        payload = data if isinstance(data, (bytes, str)) else json.dumps(data)
        return self._profile(
            "PATCH",
            self._profile_url(name, *args),
            data=payload,
            headers={"Content-Type": content_type},
        )

    def namespace_labels(self, namespace: str) -> dict[str, str]:
        """Labels of a namespace."""
        body = self._json("GET", self._url("api", "v1", "namespaces", namespace))
        labels = (body.get("metadata") or {}).get("labels") or {}
        return {str(key): str(value) for key, value in labels.items()}

    def config_map_data(self, namespace: str, name: str) -> dict[str, str]:
        """The data entries of a ConfigMap."""
        body = self._json(
            "GET", self._url("api", "v1", "namespaces", namespace, "configmaps", name)
        )
        return {str(key): str(value) for key, value in (body.get("data") or {}).items()}