"""Reference-resolution checks run before a template is created or linted."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Protocol

from workflow_template_server.errors import TemplateNotFound, TemplateValidationError
from workflow_template_server.models import TemplateMetadata, WorkflowTemplate

# RFC 1123 subdomain: dot-separated labels of lowercase alphanumerics and hyphens, max 253 chars
_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_MAX_NAME_LENGTH = 253


class TemplateGetter(Protocol):
    """Read-only lookup of stored templates in one namespace."""

    async def get(self, name: str) -> WorkflowTemplate: ...


TemplateValidator = Callable[[TemplateGetter, WorkflowTemplate], Awaitable[None]]


async def validate_workflow_template(getter: TemplateGetter, template: WorkflowTemplate) -> None:
    """Check that a template is well formed and every template it calls resolves.

    Local ``template`` references must name a template in ``spec.templates``;
    ``templateRef`` references are looked up through ``getter``.

    Raises:
        TemplateValidationError: Describing the first problem found.
    """
    _validate_metadata(template.metadata)

    templates = template.spec.get("templates")
    if not isinstance(templates, list) or not templates:
        msg = "spec.templates must contain at least one template"
        raise TemplateValidationError(msg)
    local = _index_templates(templates)

    entrypoint = template.spec.get("entrypoint")
    if entrypoint is not None and not isinstance(entrypoint, str):
        msg = "spec.entrypoint must be a string"
        raise TemplateValidationError(msg)
    if entrypoint and entrypoint not in local:
        msg = f"spec.entrypoint {entrypoint!r} is not a template in spec.templates"
        raise TemplateValidationError(msg)

    resolver = _ReferenceResolver(getter, template.name, local)
    for tmpl in templates:
        for where, ref in _references(tmpl):
            await resolver.check(where, ref)


def _validate_metadata(metadata: TemplateMetadata) -> None:
    if metadata.name:
        if len(metadata.name) > _MAX_NAME_LENGTH or not _NAME_RE.match(metadata.name):
            msg = f"Invalid metadata.name: {metadata.name!r}. Must be a valid RFC 1123 subdomain."
            raise TemplateValidationError(msg)
    elif not metadata.generate_name:
        msg = "metadata.name or metadata.generateName is required"
        raise TemplateValidationError(msg)


def _index_templates(templates: list[Any]) -> set[str]:
    names: set[str] = set()
    for i, tmpl in enumerate(templates):
        if not isinstance(tmpl, dict) or not tmpl.get("name"):
            msg = f"spec.templates[{i}].name is required"
            raise TemplateValidationError(msg)
        name = tmpl["name"]
        if not isinstance(name, str):
            msg = f"spec.templates[{i}].name must be a string"
            raise TemplateValidationError(msg)
        if name in names:
            msg = f"spec.templates[{i}].name {name!r} is not unique"
            raise TemplateValidationError(msg)
        names.add(name)
    return names


def _references(tmpl: dict[str, Any]) -> Iterator[tuple[str, Any]]:
    """Yield (location, step-or-task) for every call site inside one template."""
    name = tmpl["name"]
    steps = tmpl.get("steps") or []
    if not isinstance(steps, list):
        msg = f"templates.{name}.steps must be a list of step groups"
        raise TemplateValidationError(msg)
    for i, group in enumerate(steps):
        if not isinstance(group, list):
            msg = f"templates.{name}.steps[{i}] must be a list of parallel steps"
            raise TemplateValidationError(msg)
        for j, step in enumerate(group):
            yield f"templates.{name}.steps[{i}][{j}]", step

    dag = tmpl.get("dag") or {}
    if not isinstance(dag, dict):
        msg = f"templates.{name}.dag must be a mapping"
        raise TemplateValidationError(msg)
    tasks = dag.get("tasks") or []
    if not isinstance(tasks, list):
        msg = f"templates.{name}.dag.tasks must be a list"
        raise TemplateValidationError(msg)
    for k, task in enumerate(tasks):
        yield f"templates.{name}.dag.tasks[{k}]", task


class _ReferenceResolver:
    """Resolves call sites, fetching each referenced WorkflowTemplate at most once."""

    def __init__(self, getter: TemplateGetter, own_name: str | None, local: set[str]) -> None:
        self._getter = getter
        self._own_name = own_name
        self._local = local
        self._fetched: dict[str, set[str]] = {}

    async def check(self, where: str, ref: Any) -> None:
        if not isinstance(ref, dict):
            msg = f"{where} must be a mapping"
            raise TemplateValidationError(msg)

        local_name = ref.get("template")
        template_ref = ref.get("templateRef")
        if local_name and template_ref:
            msg = f"{where} has both template and templateRef"
            raise TemplateValidationError(msg)
        if local_name:
            if not isinstance(local_name, str):
                msg = f"{where}.template must be a string"
                raise TemplateValidationError(msg)
            if local_name not in self._local:
                msg = f"{where}.template: template {local_name!r} not found"
                raise TemplateValidationError(msg)
            return
        if not template_ref:
            msg = f"{where}: template or templateRef is required"
            raise TemplateValidationError(msg)
        if not isinstance(template_ref, dict):
            msg = f"{where}.templateRef must be a mapping"
            raise TemplateValidationError(msg)

        ref_name = template_ref.get("name")
        ref_template = template_ref.get("template")
        if not ref_name or not ref_template:
            msg = f"{where}.templateRef requires both name and template"
            raise TemplateValidationError(msg)
        if not isinstance(ref_name, str) or not isinstance(ref_template, str):
            msg = f"{where}.templateRef name and template must be strings"
            raise TemplateValidationError(msg)

        available = await self._templates_of(where, ref_name)
        if ref_template not in available:
            msg = f"{where}.templateRef: template {ref_template!r} not found in workflow template {ref_name!r}"
            raise TemplateValidationError(msg)

    async def _templates_of(self, where: str, ref_name: str) -> set[str]:
        if ref_name == self._own_name:
            return self._local
        if ref_name not in self._fetched:
            try:
                target = await self._getter.get(ref_name)
            except TemplateNotFound:
                msg = f"{where}.templateRef: workflow template {ref_name!r} not found"
                raise TemplateValidationError(msg) from None
            stored = target.spec.get("templates")
            self._fetched[ref_name] = {
                t["name"]
                for t in (stored if isinstance(stored, list) else [])
                if isinstance(t, dict) and isinstance(t.get("name"), str)
            }
        return self._fetched[ref_name]
