"""WorkflowTemplate create/get/list/delete/lint operations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from workflow_template_server.clients import ClientPair
from workflow_template_server.clients.workflow_templates import WorkflowTemplatesClient
from workflow_template_server.config import ServerConfig
from workflow_template_server.errors import (
    MissingTemplateBody,
    RequestCancelled,
    TemplateValidationError,
    ValidationFailed,
)
from workflow_template_server.models import (
    RequestCredentials,
    WorkflowTemplate,
    WorkflowTemplateCreateRequest,
    WorkflowTemplateDeleteRequest,
    WorkflowTemplateDeleteResponse,
    WorkflowTemplateGetRequest,
    WorkflowTemplateList,
    WorkflowTemplateListRequest,
)
from workflow_template_server.resolver import ClientPairProvider, build_client_provider
from workflow_template_server.validation import TemplateValidator, validate_workflow_template


class WorkflowTemplateService:
    """Runs template operations with the client pair resolved for each request.

    Every operation first resolves the caller's client pair, then picks the
    request namespace when set and the configured default otherwise.
    """

    def __init__(
        self,
        namespace: str,
        client_provider: ClientPairProvider,
        validator: TemplateValidator = validate_workflow_template,
        request_timeout: float | None = None,
    ) -> None:
        self._namespace = namespace
        self._client_provider = client_provider
        self._validator = validator
        self._request_timeout = request_timeout

    @property
    def namespace(self) -> str:
        return self._namespace

    async def create_workflow_template(
        self,
        request: WorkflowTemplateCreateRequest,
        credentials: RequestCredentials | None = None,
    ) -> WorkflowTemplate:
        """Validate the template and store it; returns the object as stored."""
        async with self._deadline("create_workflow_template"), self._clients(credentials) as clients:
            namespace = self._effective_namespace(request.namespace)
            template = await self._validate(clients.templates, namespace, request.template)
            return await clients.templates.create(namespace, template)

    async def get_workflow_template(
        self,
        request: WorkflowTemplateGetRequest,
        credentials: RequestCredentials | None = None,
    ) -> WorkflowTemplate:
        async with self._deadline("get_workflow_template"), self._clients(credentials) as clients:
            namespace = self._effective_namespace(request.namespace)
            return await clients.templates.get(namespace, request.template_name)

    async def list_workflow_templates(
        self,
        request: WorkflowTemplateListRequest,
        credentials: RequestCredentials | None = None,
    ) -> WorkflowTemplateList:
        async with self._deadline("list_workflow_templates"), self._clients(credentials) as clients:
            namespace = self._effective_namespace(request.namespace)
            return WorkflowTemplateList(items=await clients.templates.list(namespace))

    async def delete_workflow_template(
        self,
        request: WorkflowTemplateDeleteRequest,
        credentials: RequestCredentials | None = None,
    ) -> WorkflowTemplateDeleteResponse:
        async with self._deadline("delete_workflow_template"), self._clients(credentials) as clients:
            namespace = self._effective_namespace(request.namespace)
            await clients.templates.delete(namespace, request.template_name)
            return WorkflowTemplateDeleteResponse(template_name=request.template_name)

    async def lint_workflow_template(
        self,
        request: WorkflowTemplateCreateRequest,
        credentials: RequestCredentials | None = None,
    ) -> WorkflowTemplate:
        """Validate the template without storing it; returns the input template."""
        async with self._deadline("lint_workflow_template"), self._clients(credentials) as clients:
            namespace = self._effective_namespace(request.namespace)
            return await self._validate(clients.templates, namespace, request.template)

    @asynccontextmanager
    async def _clients(self, credentials: RequestCredentials | None) -> AsyncIterator[ClientPair]:
        # per-request pairs are discarded with the request; closing the shared pair is a no-op
        pair = await self._client_provider.resolve(credentials)
        try:
            yield pair
        finally:
            pair.close()

    def _effective_namespace(self, requested: str | None) -> str:
        return requested or self._namespace

    async def _validate(
        self,
        templates: WorkflowTemplatesClient,
        namespace: str,
        template: WorkflowTemplate | None,
    ) -> WorkflowTemplate:
        # create and lint must go through this same path
        if template is None:
            raise MissingTemplateBody()
        try:
            await self._validator(templates.getter(namespace), template)
        except TemplateValidationError as e:
            raise ValidationFailed(e) from e
        return template

    @asynccontextmanager
    async def _deadline(self, operation: str) -> AsyncIterator[None]:
        deadline = asyncio.timeout(self._request_timeout)
        try:
            async with deadline:
                yield
        except TimeoutError:
            if not deadline.expired():
                raise
            raise RequestCancelled(operation, self._request_timeout) from None


def build_service(config: ServerConfig) -> WorkflowTemplateService:
    """Wire the service from configuration, loading the shared identity if needed."""
    return WorkflowTemplateService(
        namespace=config.namespace,
        client_provider=build_client_provider(config),
        request_timeout=config.request_timeout_seconds,
    )
