"""MCP server entry point and tool registration."""

import sys
import time
from collections.abc import Awaitable
from typing import Any

import structlog
from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel

from workflow_template_server.config import load_server_config, validate_server_config
from workflow_template_server.models import (
    RequestCredentials,
    WorkflowTemplate,
    WorkflowTemplateCreateRequest,
    WorkflowTemplateDeleteRequest,
    WorkflowTemplateGetRequest,
    WorkflowTemplateListRequest,
    scrub_sensitive_values,
)
from workflow_template_server.service import WorkflowTemplateService, build_service

# Configure structlog for JSON output to stderr
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

log = structlog.get_logger()

SERVER_NAME = "Workflow Template Server"


def credentials_from_context(ctx: Context | None) -> RequestCredentials:
    """Read per-request credentials from the MCP request ``_meta`` side channel."""
    if ctx is None:
        return RequestCredentials()
    try:
        meta = ctx.request_context.meta
    except ValueError:
        # no request is in flight
        return RequestCredentials()
    return RequestCredentials.from_metadata(meta.model_extra if meta is not None else None)


async def run_tool(tool: str, call: Awaitable[BaseModel]) -> str:
    """Await a service call and render its result, scrubbing secrets from failures."""
    start = time.monotonic()
    try:
        result = await call
    except Exception as e:
        code = getattr(e, "code", "Internal")
        sanitised = scrub_sensitive_values(str(e))
        log.error("tool_failed", tool=tool, code=code, error=sanitised)
        raise RuntimeError(f"{code}: {sanitised}") from None
    log.info("tool_completed", tool=tool, latency_ms=_elapsed_ms(start))
    return result.model_dump_json(indent=2, by_alias=True, exclude_none=True)


def _template_or_none(body: dict[str, Any] | None) -> WorkflowTemplate | None:
    return WorkflowTemplate.from_request(body) if body is not None else None


def build_mcp(service: WorkflowTemplateService) -> FastMCP:
    """Create the MCP server with one tool per template operation bound to ``service``."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    async def create_workflow_template(
        ctx: Context,
        template: dict[str, Any] | None = None,
        namespace: str = "",
    ) -> str:
        """Validate a WorkflowTemplate and create it in a namespace.

        Returns the stored WorkflowTemplate. Templates that fail validation,
        including unresolved template references, are rejected and not stored.

        Args:
            template: The WorkflowTemplate object (apiVersion, kind, metadata, spec).
            namespace: Target namespace. Omit to use the server's default namespace.
        """

        async def call() -> BaseModel:
            request = WorkflowTemplateCreateRequest(namespace=namespace, template=_template_or_none(template))
            return await service.create_workflow_template(request, credentials_from_context(ctx))

        return await run_tool("create_workflow_template", call())

    @mcp.tool()
    async def get_workflow_template(ctx: Context, name: str, namespace: str = "") -> str:
        """Get a stored WorkflowTemplate by name.

        Args:
            name: The WorkflowTemplate name.
            namespace: Namespace to read from. Omit to use the server's default namespace.
        """
        request = WorkflowTemplateGetRequest(namespace=namespace, template_name=name)
        return await run_tool(
            "get_workflow_template", service.get_workflow_template(request, credentials_from_context(ctx))
        )

    @mcp.tool()
    async def list_workflow_templates(ctx: Context, namespace: str = "") -> str:
        """List every WorkflowTemplate in a namespace.

        Args:
            namespace: Namespace to list. Omit to use the server's default namespace.
        """
        request = WorkflowTemplateListRequest(namespace=namespace)
        return await run_tool(
            "list_workflow_templates", service.list_workflow_templates(request, credentials_from_context(ctx))
        )

    @mcp.tool()
    async def delete_workflow_template(ctx: Context, name: str, namespace: str = "") -> str:
        """Delete a WorkflowTemplate by name.

        Returns the deleted template name and status "Deleted".

        Args:
            name: The WorkflowTemplate name.
            namespace: Namespace to delete from. Omit to use the server's default namespace.
        """
        request = WorkflowTemplateDeleteRequest(namespace=namespace, template_name=name)
        return await run_tool(
            "delete_workflow_template", service.delete_workflow_template(request, credentials_from_context(ctx))
        )

    @mcp.tool()
    async def lint_workflow_template(
        ctx: Context,
        template: dict[str, Any] | None = None,
        namespace: str = "",
    ) -> str:
        """Validate a WorkflowTemplate without storing it.

        Runs exactly the checks create_workflow_template runs and returns the
        template unchanged when it is valid.

        Args:
            template: The WorkflowTemplate object (apiVersion, kind, metadata, spec).
            namespace: Namespace used to resolve templateRef references.
        """

        async def call() -> BaseModel:
            request = WorkflowTemplateCreateRequest(namespace=namespace, template=_template_or_none(template))
            return await service.lint_workflow_template(request, credentials_from_context(ctx))

        return await run_tool("lint_workflow_template", call())

    return mcp


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def main() -> None:
    config = load_server_config()
    validate_server_config(config)
    service = build_service(config)
    log.info("server_starting", namespace=config.namespace, enable_client_auth=config.enable_client_auth)
    build_mcp(service).run(transport="stdio")


if __name__ == "__main__":
    main()
