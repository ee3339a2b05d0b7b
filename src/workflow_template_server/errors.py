"""Typed errors raised by the client resolver, template store and service."""

from __future__ import annotations


class WorkflowTemplateError(Exception):
    """Base class for every error surfaced to callers of the service.

    ``code`` is a gRPC-style status name that outer layers map to their own
    status codes.
    """

    code = "Internal"


# --- Credential errors ---


class MissingCredentials(WorkflowTemplateError):
    """Per-request auth is enabled but no client rest config was attached."""

    code = "Unauthenticated"

    def __init__(self) -> None:
        super().__init__("Client kubeconfig is not found in request metadata")


class MalformedCredentials(WorkflowTemplateError):
    """The attached client rest config could not be parsed."""

    code = "InvalidArgument"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Client kubeconfig is malformed: {reason}")


class ClientConstructionFailed(WorkflowTemplateError):
    """A Kubernetes client could not be built from the caller's rest config."""

    def __init__(self, client: str, cause: BaseException) -> None:
        self.client = client
        self.cause = cause
        super().__init__(f"Failed to create {client} client: {cause}")


# --- Request errors ---


class MissingTemplateBody(WorkflowTemplateError):
    code = "InvalidArgument"

    def __init__(self) -> None:
        super().__init__("WorkflowTemplate is not found in request body")


class InvalidTemplateBody(WorkflowTemplateError):
    """The request body is not shaped like a WorkflowTemplate object."""

    code = "InvalidArgument"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"WorkflowTemplate body is invalid: {reason}")


class TemplateValidationError(Exception):
    """Raised by a template validator when it rejects a template."""


class ValidationFailed(WorkflowTemplateError):
    """The validator rejected the template; ``cause`` is the validator's error."""

    code = "InvalidArgument"

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Failed to validate workflow template: {cause}")


# --- Backend errors ---


class TemplateNotFound(WorkflowTemplateError):
    code = "NotFound"

    def __init__(self, namespace: str, name: str) -> None:
        self.namespace = namespace
        self.name = name
        super().__init__(f'workflowtemplates.argoproj.io "{name}" not found in namespace "{namespace}"')


class BackendRejected(WorkflowTemplateError):
    """The API server refused the request (conflict, forbidden, invalid object)."""

    code = "FailedPrecondition"

    def __init__(self, status: int, reason: str) -> None:
        self.status = status
        self.reason = reason
        super().__init__(f"API server rejected the request ({status}): {reason}")


class BackendUnavailable(WorkflowTemplateError):
    code = "Unavailable"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"API server unavailable: {reason}")


class RequestCancelled(WorkflowTemplateError):
    """The operation did not finish before the request deadline."""

    code = "DeadlineExceeded"

    def __init__(self, operation: str, timeout: float | None) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} abandoned after {timeout}s deadline")
