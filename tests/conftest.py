"""Shared test fixtures for all test modules."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest

from workflow_template_server.clients import ClientPair
from workflow_template_server.clients.workflow_templates import NamespacedTemplateGetter
from workflow_template_server.errors import BackendRejected, TemplateNotFound
from workflow_template_server.models import WorkflowTemplate
from workflow_template_server.resolver import SharedClientProvider
from workflow_template_server.service import WorkflowTemplateService

DEFAULT_NAMESPACE = "ns-a"


class FakeWorkflowTemplatesClient:
    """In-memory stand-in for WorkflowTemplatesClient that records every call."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, WorkflowTemplate]] = {}
        self.calls: list[tuple[str, str, str | None]] = []

    async def create(self, namespace: str, template: WorkflowTemplate) -> WorkflowTemplate:
        self.calls.append(("create", namespace, template.name))
        stored_in_namespace = self.objects.setdefault(namespace, {})
        if template.name in stored_in_namespace:
            raise BackendRejected(409, "AlreadyExists")
        body = template.to_body()
        body["metadata"] = {**body["metadata"], "namespace": namespace, "resourceVersion": "1"}
        stored = WorkflowTemplate.from_body(body)
        stored_in_namespace[template.name or ""] = stored
        return stored

    async def get(self, namespace: str, name: str) -> WorkflowTemplate:
        self.calls.append(("get", namespace, name))
        try:
            return self.objects[namespace][name]
        except KeyError:
            raise TemplateNotFound(namespace, name) from None

    async def list(self, namespace: str) -> list[WorkflowTemplate]:
        self.calls.append(("list", namespace, None))
        return list(self.objects.get(namespace, {}).values())

    async def delete(self, namespace: str, name: str) -> None:
        self.calls.append(("delete", namespace, name))
        try:
            del self.objects[namespace][name]
        except KeyError:
            raise TemplateNotFound(namespace, name) from None

    def getter(self, namespace: str) -> NamespacedTemplateGetter:
        return NamespacedTemplateGetter(self, namespace)  # type: ignore[arg-type]

    def mutations(self) -> list[tuple[str, str, str | None]]:
        return [c for c in self.calls if c[0] in ("create", "delete")]


@pytest.fixture
def fake_templates() -> FakeWorkflowTemplatesClient:
    return FakeWorkflowTemplatesClient()


@pytest.fixture
def shared_pair(fake_templates: FakeWorkflowTemplatesClient) -> ClientPair:
    """The process-wide pair, backed by the in-memory store."""
    return ClientPair(templates=fake_templates, kube=MagicMock())  # type: ignore[arg-type]


@pytest.fixture
def service(shared_pair: ClientPair) -> WorkflowTemplateService:
    """A service in shared-client mode with default namespace ``ns-a``."""
    return WorkflowTemplateService(DEFAULT_NAMESPACE, SharedClientProvider(shared_pair))


@pytest.fixture
def make_template() -> Any:
    """Factory fixture: build a WorkflowTemplate (see ``_make_template``)."""
    return _make_template


@pytest.fixture
def make_steps_template() -> Any:
    """Factory fixture: build a template calling other templates (see ``_make_steps_template``)."""
    return _make_steps_template


@pytest.fixture
def make_rest_config() -> Any:
    """Factory fixture: serialize a client rest config (see ``_make_rest_config``)."""
    return _make_rest_config


def _make_template(
    name: str = "hello-world",
    templates: list[dict[str, Any]] | None = None,
    entrypoint: str | None = "main",
    namespace: str | None = None,
) -> WorkflowTemplate:
    """Create a WorkflowTemplate with a single container template by default."""
    spec: dict[str, Any] = {
        "templates": templates
        if templates is not None
        else [{"name": "main", "container": {"image": "alpine:3.19", "command": ["echo", "hello"]}}],
    }
    if entrypoint:
        spec["entrypoint"] = entrypoint
    metadata: dict[str, Any] = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return WorkflowTemplate.from_body(
        {"apiVersion": "argoproj.io/v1alpha1", "kind": "WorkflowTemplate", "metadata": metadata, "spec": spec}
    )


def _make_steps_template(name: str, *step_refs: dict[str, Any]) -> WorkflowTemplate:
    """Create a template whose entrypoint runs ``step_refs`` as one parallel step group."""
    return _make_template(
        name=name,
        templates=[
            {"name": "main", "steps": [[{"name": f"step-{i}", **ref} for i, ref in enumerate(step_refs)]]},
            {"name": "leaf", "container": {"image": "alpine:3.19"}},
        ],
    )


def _make_rest_config(
    host: str = "https://10.0.0.1:6443",
    bearer_token: str | None = "embedded-token",
    **extra: Any,
) -> str:
    """Serialize a client rest config the way request metadata carries it."""
    config: dict[str, Any] = {"Host": host, **extra}
    if bearer_token is not None:
        config["BearerToken"] = bearer_token
    return json.dumps(config)
