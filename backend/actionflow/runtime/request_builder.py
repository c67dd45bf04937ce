"""Request builder — turns an action definition plus a node's inputs into a
concrete outbound HTTP request.

Flow for one node:
  1. Resolve templates inside the node's own inputs (they may reference the
     trigger payload or upstream outputs).
  2. Merge: trigger payload ∪ resolved node inputs, node keys winning.
     Fill input-schema defaults, then enforce required fields.
  3. Resolve the URL and every header template against
     ``{input: merged, $json: prior results}``.
  4. If a credential applies, decrypt it *here*, turn its fields into
     headers and inject them verbatim (never templated, never put in the body).
  5. Render the body template (empty template → merged inputs pass through).
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from actionflow.compiler.ir import IRActionDefinition, IRCredential, IRNode
from actionflow.runtime.state import ErrorType
from actionflow.services.credential_vault import CredentialVault, DecryptionError
from actionflow.templating.engine import build_request_body, render_value, resolve, stringify
from actionflow.utils.redaction import redact_headers

logger = logging.getLogger("actionflow.runtime.request_builder")

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


class BuildError(Exception):
    """Raised when a node's request cannot be assembled.  Fails only that node."""

    def __init__(self, node_id: str, message: str, error_type: str = ErrorType.BUILD):
        self.node_id = node_id
        self.error_type = error_type
        super().__init__(f"Node '{node_id}': {message}")


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    # Header names that carry credential values; always masked when logged.
    injected_headers: frozenset[str] = frozenset()

    def __repr__(self) -> str:
        return (
            f"HttpRequest(method={self.method!r}, url={self.url!r}, "
            f"headers={redact_headers(self.headers, self.injected_headers)!r})"
        )

    def loggable_headers(self) -> dict[str, str]:
        return redact_headers(self.headers, self.injected_headers)


def merge_inputs(
    action: IRActionDefinition,
    node: IRNode,
    user_inputs: Mapping[str, Any],
    prior_results: Mapping[str, Any],
) -> dict[str, Any]:
    """Build the ``input`` namespace for one node."""
    resolved_node_inputs = render_value(node.inputs, user_inputs, prior_results)
    merged: dict[str, Any] = {**user_inputs, **resolved_node_inputs}

    for input_field in action.input_schema:
        if input_field.key not in merged and input_field.default is not None:
            merged[input_field.key] = input_field.default

    missing = [
        input_field.key
        for input_field in action.input_schema
        if input_field.required and merged.get(input_field.key) in (None, "")
    ]
    if missing:
        raise BuildError(node.node_id, f"missing required input(s): {', '.join(missing)}")
    return merged


def credential_headers(credential_type: str, fields: Mapping[str, Any]) -> dict[str, str]:
    """Map decrypted credential fields to the headers they authenticate with."""
    if credential_type == "basic_auth":
        user = stringify(fields.get("username", ""))
        password = stringify(fields.get("password", ""))
        token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}

    if credential_type == "oauth2":
        access_token = fields.get("accessToken") or fields.get("access_token")
        if not access_token:
            return {}
        return {"Authorization": f"Bearer {stringify(access_token)}"}

    if credential_type == "api_key" and "name" in fields and "value" in fields:
        return {stringify(fields["name"]): stringify(fields["value"])}

    # custom / api_key without name+value: every field is header-name → value
    return {str(name): stringify(value) for name, value in fields.items()}


def build_request(
    action: IRActionDefinition,
    node: IRNode,
    user_inputs: Mapping[str, Any],
    prior_results: Mapping[str, Any],
    credential_fields: Mapping[str, Any] | None = None,
    credential_type: str = "custom",
) -> HttpRequest:
    """Assemble the request for *node*; raises BuildError when it cannot."""
    api = action.api_config
    if not api.method:
        raise BuildError(node.node_id, f"action '{action.action_id}' has no apiConfig.method")
    if api.method not in ALLOWED_METHODS:
        raise BuildError(node.node_id, f"unsupported HTTP method '{api.method}'")
    if not api.url:
        raise BuildError(node.node_id, f"action '{action.action_id}' has no apiConfig.url")

    merged = merge_inputs(action, node, user_inputs, prior_results)

    url = resolve(api.url, merged, prior_results).strip()
    if not url:
        raise BuildError(node.node_id, "URL resolved to an empty string")

    headers = {
        str(name): stringify(resolve(value, merged, prior_results)) if isinstance(value, str) else stringify(value)
        for name, value in api.headers.items()
    }

    injected: frozenset[str] = frozenset()
    if credential_fields is not None:
        cred_headers = credential_headers(credential_type, credential_fields)
        if not cred_headers and api.requires_credential:
            raise BuildError(
                node.node_id,
                f"credential of type '{credential_type}' yields no auth headers; action '{action.action_id}' requires one",
            )
        overridden = {name.lower() for name in cred_headers}
        headers = {k: v for k, v in headers.items() if k.lower() not in overridden}
        headers.update(cred_headers)
        injected = frozenset(cred_headers)

    body = build_request_body(api.body, merged, prior_results)
    return HttpRequest(
        method=api.method,
        url=url,
        headers=headers,
        body=body,
        injected_headers=injected,
    )


def select_credential(
    action: IRActionDefinition,
    node: IRNode,
    credentials: Mapping[str, IRCredential],
) -> IRCredential | None:
    """Pick the credential for *node*, or None when the action runs unauthenticated.

    An explicit ``credentialId`` on the node must exist, be active and be
    scoped to the action.  Otherwise the first active scoped credential wins.
    """
    if node.credential_id:
        cred = credentials.get(node.credential_id)
        if cred is None:
            raise BuildError(node.node_id, f"credential '{node.credential_id}' not found")
        if not cred.is_active:
            raise BuildError(node.node_id, f"credential '{node.credential_id}' is inactive")
        if not cred.is_scoped_to(action):
            raise BuildError(
                node.node_id,
                f"credential '{node.credential_id}' is not scoped to action '{action.action_id}'",
            )
        return cred

    for cred in credentials.values():
        if cred.is_active and cred.is_scoped_to(action):
            return cred

    if action.api_config.requires_credential:
        raise BuildError(node.node_id, f"action '{action.action_id}' requires an active credential")
    return None


class RequestBuilder:
    """Request builder bound to the process vault."""

    def __init__(self, vault: CredentialVault) -> None:
        self._vault = vault

    def build(
        self,
        action: IRActionDefinition,
        node: IRNode,
        user_inputs: Mapping[str, Any],
        prior_results: Mapping[str, Any],
        credential: IRCredential | None = None,
    ) -> HttpRequest:
        if credential is None:
            return build_request(action, node, user_inputs, prior_results)

        try:
            fields = self._vault.decrypt(credential.encrypted_data)
        except DecryptionError as exc:
            raise BuildError(
                node.node_id,
                f"credential '{credential.credential_id}' could not be decrypted: {exc}",
                error_type=ErrorType.DECRYPTION,
            ) from exc
        return build_request(
            action,
            node,
            user_inputs,
            prior_results,
            credential_fields=fields,
            credential_type=credential.type,
        )
