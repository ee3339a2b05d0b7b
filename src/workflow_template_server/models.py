"""Pydantic v2 models for templates, requests, responses and request credentials."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, model_validator

from workflow_template_server.errors import InvalidTemplateBody, MalformedCredentials

WORKFLOW_TEMPLATE_API_VERSION = "argoproj.io/v1alpha1"
WORKFLOW_TEMPLATE_KIND = "WorkflowTemplate"

# Request metadata keys carrying per-request credentials
CLIENT_REST_CONFIG = "ClientRestConfig"
AUTH_TOKEN = "AuthToken"


# --- Workflow templates ---


class TemplateMetadata(BaseModel):
    """Object metadata; keys other than name/generateName/namespace pass through untouched."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    name: str | None = None
    generate_name: str | None = Field(default=None, alias="generateName")
    namespace: str | None = None


class WorkflowTemplate(BaseModel):
    """A stored WorkflowTemplate resource. The spec is opaque to the service."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    api_version: str = Field(default=WORKFLOW_TEMPLATE_API_VERSION, alias="apiVersion")
    kind: str = WORKFLOW_TEMPLATE_KIND
    metadata: TemplateMetadata = Field(default_factory=TemplateMetadata)
    spec: dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str | None:
        return self.metadata.name

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> WorkflowTemplate:
        """Build a template from a Kubernetes object body as returned by the API server."""
        return cls.model_validate(dict(body))

    @classmethod
    def from_request(cls, body: Mapping[str, Any]) -> WorkflowTemplate:
        """Build a template from a caller-supplied body.

        Raises:
            InvalidTemplateBody: If the body does not have the shape of a WorkflowTemplate.
        """
        try:
            return cls.from_body(body)
        except ValidationError as e:
            raise InvalidTemplateBody(_describe_errors(e)) from None

    def to_body(self) -> dict[str, Any]:
        """Return the Kubernetes object body for this template."""
        return self.model_dump(by_alias=True, exclude_none=True)


class WorkflowTemplateList(BaseModel):
    items: list[WorkflowTemplate] = Field(default_factory=list)


# --- Requests and responses ---


class WorkflowTemplateCreateRequest(BaseModel):
    """Input for create and lint. An empty namespace selects the server default."""

    namespace: str = ""
    template: WorkflowTemplate | None = None


class WorkflowTemplateGetRequest(BaseModel):
    namespace: str = ""
    template_name: str


class WorkflowTemplateListRequest(BaseModel):
    namespace: str = ""


class WorkflowTemplateDeleteRequest(BaseModel):
    namespace: str = ""
    template_name: str


class WorkflowTemplateDeleteResponse(BaseModel):
    template_name: str
    status: str = "Deleted"


# --- Per-request credentials ---


class RequestCredentials(BaseModel):
    """Credentials attached to a single request out of band.

    ``rest_config`` is the serialized client rest config; ``bearer_token``
    overrides any token embedded in it.
    """

    model_config = ConfigDict(frozen=True)

    rest_config: str | None = None
    bearer_token: SecretStr | None = None

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any] | None) -> RequestCredentials:
        """Read credentials from request metadata.

        Values may be plain strings or lists of strings (first entry wins).
        Missing or empty entries become None.
        """
        if not metadata:
            return cls()
        token = _first_value(metadata.get(AUTH_TOKEN))
        return cls(
            rest_config=_first_value(metadata.get(CLIENT_REST_CONFIG)),
            bearer_token=SecretStr(token) if token else None,
        )


def _first_value(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value)
    return value or None


class TLSClientConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    insecure: bool = Field(default=False, alias="Insecure")
    server_name: str | None = Field(default=None, alias="ServerName")
    cert_file: str | None = Field(default=None, alias="CertFile")
    key_file: str | None = Field(default=None, alias="KeyFile")
    ca_file: str | None = Field(default=None, alias="CAFile")
    # base64-encoded PEM, as serialized by the client
    cert_data: str | None = Field(default=None, alias="CertData")
    key_data: SecretStr | None = Field(default=None, alias="KeyData")
    ca_data: str | None = Field(default=None, alias="CAData")


class ConnectionDescriptor(BaseModel):
    """Parsed client rest config describing how to reach the API server."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    host: str = Field(alias="Host", min_length=1)
    api_path: str | None = Field(default=None, alias="APIPath")
    username: str | None = Field(default=None, alias="Username")
    password: SecretStr | None = Field(default=None, alias="Password")
    bearer_token: SecretStr | None = Field(default=None, alias="BearerToken")
    bearer_token_file: str | None = Field(default=None, alias="BearerTokenFile")
    tls_client_config: TLSClientConfig = Field(default_factory=TLSClientConfig, alias="TLSClientConfig")
    user_agent: str | None = Field(default=None, alias="UserAgent")
    # nanoseconds
    timeout: int | None = Field(default=None, alias="Timeout")

    @classmethod
    def parse(cls, raw: str) -> ConnectionDescriptor:
        """Parse a serialized rest config.

        Raises:
            MalformedCredentials: If the text is not a JSON object matching the schema.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedCredentials(_describe_errors(e)) from None

    @model_validator(mode="after")
    def _reject_server_side_credentials(self) -> ConnectionDescriptor:
        # file paths would be read from the server's own disk
        tls = self.tls_client_config
        paths = {
            "BearerTokenFile": self.bearer_token_file,
            "TLSClientConfig.CAFile": tls.ca_file,
            "TLSClientConfig.CertFile": tls.cert_file,
            "TLSClientConfig.KeyFile": tls.key_file,
        }
        named = [field for field, value in paths.items() if value]
        if named:
            msg = f"file paths are not accepted, send the content inline instead: {', '.join(named)}"
            raise ValueError(msg)
        if self.username or (self.password is not None and self.password.get_secret_value()):
            msg = "basic auth (Username/Password) is not supported, send a bearer token instead"
            raise ValueError(msg)
        return self

    def with_bearer_token(self, token: SecretStr | None) -> ConnectionDescriptor:
        """Return a copy whose bearer token is replaced by ``token`` when one is given."""
        if token is None:
            return self
        return self.model_copy(update={"bearer_token": token})

    def redacted(self) -> dict[str, Any]:
        """Loggable view of the descriptor with secrets masked."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _describe_errors(error: ValidationError) -> str:
    # include_input=False keeps embedded secrets out of the message
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors(include_input=False, include_url=False)
    )


# --- Output scrubbing ---

_SECRET_FIELD_PATTERN = re.compile(r'"(BearerToken|Password|KeyData|bearer_token|password|key_data)"\s*:\s*"[^"]*"')
_PEM_PATTERN = re.compile(r"-----BEGIN [A-Z ]+-----.*?-----END [A-Z ]+-----", re.DOTALL)
_JWT_PATTERN = re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+")
_BEARER_PATTERN = re.compile(r"\b[Bb]earer\s+[A-Za-z0-9\-._~+/]+=*")


def scrub_sensitive_values(text: str) -> str:
    """Remove bearer tokens, JWTs, PEM blocks and secret rest-config fields from text."""
    if not text:
        return text
    result = _SECRET_FIELD_PATTERN.sub(r'"\1": "[REDACTED]"', text)
    result = _PEM_PATTERN.sub("[REDACTED_PEM]", result)
    result = _JWT_PATTERN.sub("[REDACTED_JWT]", result)
    result = _BEARER_PATTERN.sub("Bearer [REDACTED]", result)
    return result
