"""Client-specific test fixtures: mocked CustomObjects API and API errors."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from workflow_template_server.clients.workflow_templates import WorkflowTemplatesClient


@pytest.fixture
def mock_custom_objects_api() -> MagicMock:
    """Factory for a mock Kubernetes CustomObjectsApi."""
    return MagicMock()


@pytest.fixture
def templates_client(mock_custom_objects_api: MagicMock) -> WorkflowTemplatesClient:
    """A WorkflowTemplatesClient whose CustomObjectsApi is the mock."""
    client = WorkflowTemplatesClient(MagicMock())
    client._api = mock_custom_objects_api
    return client


def api_error(status: int, reason: str) -> ApiException:
    return ApiException(status=status, reason=reason)


@pytest.fixture
def make_api_error() -> object:
    """Factory fixture for ApiException instances with a given status and reason."""
    return api_error
