"""Kubernetes CustomObjects API wrapper for argoproj.io WorkflowTemplates."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes import client as k8s_client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from workflow_template_server.errors import (
    BackendRejected,
    BackendUnavailable,
    TemplateNotFound,
    WorkflowTemplateError,
)
from workflow_template_server.models import WorkflowTemplate

GROUP = "argoproj.io"
VERSION = "v1alpha1"
PLURAL = "workflowtemplates"

T = TypeVar("T")


class WorkflowTemplatesClient:
    """Namespaced CRUD over WorkflowTemplate custom resources.

    Every call is issued once; API errors are translated to the service's
    typed errors.
    """

    def __init__(self, api_client: k8s_client.ApiClient) -> None:
        self._api = k8s_client.CustomObjectsApi(api_client)

    async def create(self, namespace: str, template: WorkflowTemplate) -> WorkflowTemplate:
        """Create the template in ``namespace`` and return the stored object."""
        body = await self._call(
            namespace,
            template.name or "",
            self._api.create_namespaced_custom_object,
            GROUP,
            VERSION,
            namespace,
            PLURAL,
            template.to_body(),
        )
        return WorkflowTemplate.from_body(body)

    async def get(self, namespace: str, name: str) -> WorkflowTemplate:
        body = await self._call(
            namespace, name, self._api.get_namespaced_custom_object, GROUP, VERSION, namespace, PLURAL, name
        )
        return WorkflowTemplate.from_body(body)

    async def list(self, namespace: str) -> list[WorkflowTemplate]:
        """List every template in ``namespace`` in the order the API server returns them."""
        body = await self._call(
            namespace, "", self._api.list_namespaced_custom_object, GROUP, VERSION, namespace, PLURAL
        )
        return [WorkflowTemplate.from_body(item) for item in body.get("items") or []]

    async def delete(self, namespace: str, name: str) -> None:
        await self._call(
            namespace, name, self._api.delete_namespaced_custom_object, GROUP, VERSION, namespace, PLURAL, name
        )

    def getter(self, namespace: str) -> NamespacedTemplateGetter:
        """Return a read-only lookup over the templates in ``namespace``."""
        return NamespacedTemplateGetter(self, namespace)

    async def _call(self, namespace: str, name: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except ApiException as e:
            raise _translate_api_exception(e, namespace, name) from e
        except (HTTPError, OSError) as e:
            raise BackendUnavailable(str(e)) from e


class NamespacedTemplateGetter:
    """Read-only view of one namespace's templates, used to resolve template references."""

    def __init__(self, templates: WorkflowTemplatesClient, namespace: str) -> None:
        self._templates = templates
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    async def get(self, name: str) -> WorkflowTemplate:
        return await self._templates.get(self._namespace, name)


def _translate_api_exception(e: ApiException, namespace: str, name: str) -> WorkflowTemplateError:
    status = e.status or 0
    if status == 404:
        return TemplateNotFound(namespace, name)
    if 400 <= status < 500:
        return BackendRejected(status, str(e.reason or "unknown"))
    return BackendUnavailable(f"{status} {e.reason or 'no response'}".strip())
