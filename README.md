# manifestguard

`manifestguard` is a validating admission webhook for Kubernetes. Each
admission request it receives is matched against the cluster's
`ManifestIntegrityProfile` resources (group `apis.integrityshield.io`,
version `v1`), every matching profile is asked for a verdict through a
pluggable request handler, and the verdicts are combined into one
allow/deny answer.

## How a request is decided

`AdmissionController.process_request` does the following:

1. Reads the controller configuration from a ConfigMap. If it cannot be
   read or parsed, the request is allowed with the message
   `error but allow for development`.
2. If the request's namespace is outside `inScopeNamespaceSelector`, it is
   allowed (`this namespace is out of scope`).
3. If the request's kind matches one of `allow.kinds`, it is allowed
   (`this kind is out of scope`).
4. Lists every `ManifestIntegrityProfile`. A profile whose match condition
   (kinds and API groups, namespaces, excluded namespaces, object label
   selector, namespace label selector) does not cover the request reports
   `not protected`. For a matching profile the request handler is called
   with the request and the profile's `spec.parameters`.
5. Combines the results (`get_accumulated_result`): if any profile denies,
   the request is denied and the denying messages, each prefixed with
   `[<profile name>]`, are joined with `;`. Otherwise the allow messages are
   joined the same way.
6. In `detect` mode a denial becomes an allow, with the message prefixed by
   `allowed by detection mode: `.
7. When `sideEffect.updateMIPStatusForDeniedRequest` is true, each denying
   profile has its deny count increased and the violation prepended to its
   status (the ten newest are kept); in detect mode the recorded message is
   prefixed with `[Detection] `. Failures here are logged, not raised.

## What the package does not do

The package does not verify manifest signatures itself. Verification is the
job of the request handler passed to `AdmissionController`
(`request_handler(request, parameters) -> HandlerResult`). Without one, a
matching profile always allows, with the message
`request handler is not configured`. The `manifestguard-webhook` command
starts the server without a request handler, so as shipped it never denies
a request on a profile's behalf; use the library to supply your own handler.

The `--metrics-addr` and `--enable-leader-election` options are accepted
and logged at start-up, but no metrics endpoint is served and no leader
election takes place.

## Installation

```
pip install manifestguard
```

## Running the webhook

```
manifestguard-webhook --help
```

The command must run inside a cluster: it takes the API server address from
`KUBERNETES_SERVICE_HOST` and `KUBERNETES_SERVICE_PORT` and the bearer
token (and `ca.crt`, if present) from
`/var/run/secrets/kubernetes.io/serviceaccount`. It exits with status 1 if
these are missing or the server cannot start.

Options:

| Option                     | Default            | Meaning                                   |
|----------------------------|--------------------|-------------------------------------------|
| `--port`                   | `9443`             | Port the webhook listens on               |
| `--cert-dir`               | `/run/secrets/tls` | Directory holding `tls.crt` and `tls.key` |
| `--metrics-addr`           | `:8080`            | Logged only                               |
| `--enable-leader-election` | off                | Logged only                               |

The server accepts `POST /validate-resource` with an `AdmissionReview` body
and answers with an `AdmissionReview` carrying the decision (status code 200
for allow, 403 for deny, the message as the reason). Other paths get 404, a
malformed review gets 400, and an error inside the handler gets 500. SIGTERM
or Ctrl-C shuts the server down.

### Environment

| Variable                 | Default                       | Meaning                                        |
|--------------------------|-------------------------------|------------------------------------------------|
| `POD_NAMESPACE`          | `k8s-manifest-sigstore`       | Namespace holding the controller ConfigMap     |
| `CONTROLLER_CONFIG_NAME` | `admission-controller-config` | Name of the controller ConfigMap               |
| `CONTROLLER_CONFIG_KEY`  | `config.yaml`                 | Key in the ConfigMap holding the configuration |
| `LOG_LEVEL`              | `info`                        | `panic`, `fatal`, `error`, `warn`, `info`, `debug` or `trace` |
| `LOG_FORMAT`             | (text)                        | Set to `json` for JSON log lines               |

## Controller configuration

The ConfigMap entry is YAML:

```yaml
inScopeNamespaceSelector:
  include: ["*"]
  exclude: ["kube-*", "openshift-*"]
allow:
  kinds:
    - kind: Event
    - group: coordination.k8s.io
      kind: Lease
sideEffect:
  updateMIPStatusForDeniedRequest: true
mode: enforce
option: []
```

Patterns (`manifestguard.patterns`): an empty pattern or `*` matches
anything, `-` matches only the empty value, `*` inside a pattern is a
wildcard, and namespace and profile patterns may list alternatives
separated by commas. An empty `group`, `kind` or `version` in an allowed
kind matches anything. A namespace selector with no `include` entries
includes every namespace.

## Using the library

```python
from manifestguard.config import GroupVersionKind, check_if_detect_only, load_config

config = load_config(open("config.yaml").read())
config.allow.match(GroupVersionKind(group="", version="v1", kind="Event"))  # True
config.in_scope_namespace_selector.match("kube-system")                      # False
check_if_detect_only("detect")                                               # True
```

Label selectors follow Kubernetes semantics (`In`, `NotIn`, `Exists`,
`DoesNotExist`); a malformed selector raises `InvalidSelectorError` when
matched:

```python
from manifestguard.labels import LabelSelector

selector = LabelSelector.from_dict({
    "matchLabels": {"app": "web"},
    "matchExpressions": [{"key": "tier", "operator": "In", "values": ["front"]}],
})
selector.matches({"app": "web", "tier": "front"})   # True
```

A controller with your own verification:

```python
from manifestguard.admission import AdmissionRequest
from manifestguard.client import ClientConfig, ProfileClient
from manifestguard.constraint import HandlerResult
from manifestguard.webhook import AdmissionController

def verify(request, parameters):
    return HandlerResult(allow=False, message="no signature found")

controller = AdmissionController(ProfileClient(ClientConfig.in_cluster()), verify)
response = controller.process_request(AdmissionRequest.from_dict(review["request"]))
```

The modules are:

- `manifestguard.patterns` — `match_pattern`, `match_single_pattern`,
  `match_with_pattern_array`
- `manifestguard.config` — `AdmissionControllerConfig`, `NamespaceSelector`,
  `Allow`, `SideEffectConfig`, `GroupVersionKind`, `load_config`,
  `check_if_detect_only`
- `manifestguard.labels` — `LabelSelector`, `LabelSelectorRequirement`,
  `InvalidSelectorError`
- `manifestguard.admission` — `AdmissionRequest`, `AdmissionResponse`
  (with `to_review`), `allowed`, `denied`
- `manifestguard.profile` — `ManifestIntegrityProfile` with its `ProfileSpec`,
  `MatchCondition`, `Kinds`, `ProfileStatus` and `ViolationDetail`, plus
  `kind` and `resource`
- `manifestguard.client` — `ProfileClient` (get, list, watch, create,
  update, update_status, delete, delete_collection, patch, and reads of
  namespace labels and ConfigMap data), `ClientConfig`, `PatchType`,
  `ApiError`, `NotFoundError`
- `manifestguard.fake` — `FakeProfileClient`, an in-memory client that
  records each call as an `Action` and can be told to fail per verb;
  `ProfileLister`; `parse_label_selector`
- `manifestguard.constraint` — `match_check` and its parts,
  `load_constraints`, `update_constraint_status`, `update_constraints`,
  `HandlerResult`, `Result`
- `manifestguard.webhook` — `AdmissionController`, `get_accumulated_result`,
  `AccumulatedResult`, `load_admission_controller_config`,
  `configure_logging`
- `manifestguard.server` — `ValidationServer`, `handle_review`,
  `build_parser`, `main`

## Running the tests

```
pip install "manifestguard[test]"
pytest
```