"""Deciding admission requests against the ManifestIntegrityProfiles in a cluster."""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests

from .admission import AdmissionRequest, AdmissionResponse, allowed, denied
from .client import ApiError
from .config import AdmissionControllerConfig, check_if_detect_only, load_config
from .constraint import (
    HandlerResult,
    Result,
    load_constraints,
    match_check,
    update_constraints,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_KEY = "config.yaml"
DEFAULT_POD_NAMESPACE = "k8s-manifest-sigstore"
DEFAULT_CONFIG_NAME = "admission-controller-config"
LOG_LEVEL_ENV_KEY = "LOG_LEVEL"
LOG_FORMAT_ENV_KEY = "LOG_FORMAT"
PACKAGE_LOGGER = "manifestguard"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

ERROR_ALLOW_MESSAGE = "error but allow for development"
OUT_OF_SCOPE_NAMESPACE_MESSAGE = "this namespace is out of scope"
OUT_OF_SCOPE_KIND_MESSAGE = "this kind is out of scope"
NOT_PROTECTED_MESSAGE = "not protected"
DETECTION_PREFIX = "allowed by detection mode: "

RequestHandler = Callable[[AdmissionRequest, Mapping[str, Any]], HandlerResult]

_CLIENT_ERRORS = (ApiError, requests.RequestException, OSError)


@dataclass
class AccumulatedResult:
    """The combined decision of all profiles on one request."""

    allow: bool
    message: str = ""


def get_accumulated_result(results: Iterable[Result]) -> AccumulatedResult:
    """Deny if any profile denied, joining the denial messages; otherwise allow."""
    deny_messages: list[str] = []
    allow_messages: list[str] = []
    for result in results:
        message = f"[{result.profile}]{result.handler_result.message}"
        if result.handler_result.allow:
            allow_messages.append(message)
        else:
            deny_messages.append(message)
    if deny_messages:
        return AccumulatedResult(allow=False, message=";".join(deny_messages))
    return AccumulatedResult(allow=True, message=";".join(allow_messages))


class _LogFormatter(logging.Formatter):
    """Plain or JSON rendering of records, including any ``fields`` passed as extra."""

    def __init__(self, as_json: bool) -> None:
        super().__init__()
        self.as_json = as_json

    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, "fields", None) or {}
        moment = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        level = record.levelname.lower()
        message = record.getMessage()
        if self.as_json:
            entry: dict[str, Any] = {"time": moment, "level": level, "msg": message}
            entry.update(fields)
            return json.dumps(entry, default=str)
        extras = "".join(f" {key}={value}" for key, value in fields.items())
        return f"{moment} {level} {message}{extras}"


def configure_logging(env: Mapping[str, str] | None = None) -> int:
    """Set up the package logger from LOG_LEVEL and LOG_FORMAT; returns the level."""
    environ = os.environ if env is None else env
    level = LOG_LEVELS.get(environ.get(LOG_LEVEL_ENV_KEY) or "info", logging.INFO)
    as_json = environ.get(LOG_FORMAT_ENV_KEY) == "json"
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if isinstance(handler.formatter, _LogFormatter):
            package_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_LogFormatter(as_json))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return level


def load_admission_controller_config(
    client: Any, env: Mapping[str, str] | None = None
) -> AdmissionControllerConfig:
    """Read the controller configuration from its ConfigMap.

    The ConfigMap's namespace, name and key come from POD_NAMESPACE,
    CONTROLLER_CONFIG_NAME and CONTROLLER_CONFIG_KEY. Raises LookupError if the
    ConfigMap or key cannot be found and ValueError if the document is invalid.
    """
    environ = os.environ if env is None else env
    namespace = environ.get("POD_NAMESPACE") or DEFAULT_POD_NAMESPACE
    name = environ.get("CONTROLLER_CONFIG_NAME") or DEFAULT_CONFIG_NAME
    key = environ.get("CONTROLLER_CONFIG_KEY") or DEFAULT_CONFIG_KEY
    if client is None:
        raise LookupError("no cluster client available to read the admission controller config")
    try:
        data = client.config_map_data(namespace, name)
    except _CLIENT_ERRORS as exc:
        raise LookupError(
            f"failed to get a configmap `{name}` in `{namespace}` namespace: {exc}"
        ) from exc
    if key not in data:
        raise LookupError(f"`{key}` is not found in configmap")
    try:
        return load_config(data[key])
    except ValueError as exc:
        raise ValueError(f"failed to unmarshal {key} into AdmissionControllerConfig: {exc}") from exc


def _unconfigured_handler(request: AdmissionRequest, parameters: Mapping[str, Any]) -> HandlerResult:
    logger.warning("no request handler configured; allowing %s/%s", request.namespace, request.name)
    return HandlerResult(allow=True, message="request handler is not configured")


class AdmissionController:
    """Checks requests against every matching profile using a request handler."""

    def __init__(
        self,
        client: Any,
        request_handler: RequestHandler | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.client = client
        self.request_handler = request_handler or _unconfigured_handler
        self.env = env

    def _evaluate(self, request: AdmissionRequest) -> list[Result]:
        namespace_labels = getattr(self.client, "namespace_labels", None)
        results = []
        for constraint in load_constraints(self.client):
            if not match_check(request, constraint.spec.match, namespace_labels):
                results.append(
                    Result(HandlerResult(allow=True, message=NOT_PROTECTED_MESSAGE), constraint.name)
                )
                continue
            outcome = self.request_handler(request, constraint.spec.parameters)
            results.append(Result(outcome, constraint.name))
        return results

    def process_request(self, request: AdmissionRequest) -> AdmissionResponse:
        """Decide whether ``request`` is admitted."""
        try:
            config = load_admission_controller_config(self.client, self.env)
        except (LookupError, ValueError) as exc:
            logger.error("failed to load admission controller config; %s", exc)
            return allowed(ERROR_ALLOW_MESSAGE)

        if not config.in_scope_namespace_selector.match(request.namespace):
            return allowed(OUT_OF_SCOPE_NAMESPACE_MESSAGE)
        if config.allow.match(request.kind):
            return allowed(OUT_OF_SCOPE_KIND_MESSAGE)

        results = self._evaluate(request)
        accumulated = get_accumulated_result(results)

        detect_mode = check_if_detect_only(config.mode)
        if not accumulated.allow and detect_mode:
            accumulated.allow = True
            accumulated.message = DETECTION_PREFIX + accumulated.message

        if config.side_effect.update_mip_status_for_denied_request:
            update_constraints(self.client, detect_mode, request, results)

        logger.info(
            "%s",
            accumulated.message,
            extra={
                "fields": {
                    "namespace": request.namespace,
                    "name": request.name,
                    "kind": request.kind.kind,
                    "operation": request.operation,
                    "allow": accumulated.allow,
                }
            },
        )
        if accumulated.allow:
            return allowed(accumulated.message)
        return denied(accumulated.message)