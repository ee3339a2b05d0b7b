"""Client construction for the shared and per-request Kubernetes identities."""

from __future__ import annotations

import base64
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from kubernetes import client as k8s_client
from kubernetes.config import load_incluster_config, new_client_from_config

from workflow_template_server.clients.workflow_templates import WorkflowTemplatesClient
from workflow_template_server.config import ServerConfig
from workflow_template_server.errors import ClientConstructionFailed
from workflow_template_server.models import ConnectionDescriptor

log = structlog.get_logger()


@dataclass(frozen=True)
class ClientPair:
    """The clients one request talks to the cluster with.

    ``templates`` serves every template operation; ``kube`` is the core API
    client bound to the same identity. A per-request pair owns ``scratch_dir``,
    which holds its decoded TLS material until ``close`` is called.
    """

    templates: WorkflowTemplatesClient
    kube: k8s_client.CoreV1Api
    scratch_dir: tempfile.TemporaryDirectory[str] | None = field(default=None, compare=False, repr=False)

    def close(self) -> None:
        """Remove the pair's on-disk TLS material. Safe to call more than once."""
        if self.scratch_dir is not None:
            self.scratch_dir.cleanup()


def _write_material(scratch: Path, name: str, data: str | None) -> str | None:
    if not data:
        return None
    path = scratch / name
    path.write_bytes(base64.b64decode(data, validate=True))
    return str(path)


def configuration_from_descriptor(descriptor: ConnectionDescriptor, scratch: Path) -> k8s_client.Configuration:
    """Translate a parsed client rest config into an isolated client Configuration.

    Inline certificate and key data is decoded into files under ``scratch``.
    """
    configuration = k8s_client.Configuration()
    host = descriptor.host.rstrip("/")
    configuration.host = host if "://" in host else f"https://{host}"

    if descriptor.bearer_token is not None and descriptor.bearer_token.get_secret_value():
        configuration.api_key = {"authorization": f"Bearer {descriptor.bearer_token.get_secret_value()}"}

    tls = descriptor.tls_client_config
    configuration.verify_ssl = not tls.insecure
    if tls.server_name:
        configuration.tls_server_name = tls.server_name
    configuration.ssl_ca_cert = _write_material(scratch, "ca.crt", tls.ca_data)
    configuration.cert_file = _write_material(scratch, "client.crt", tls.cert_data)
    configuration.key_file = _write_material(
        scratch, "client.key", tls.key_data.get_secret_value() if tls.key_data is not None else None
    )
    return configuration


def new_api_client(configuration: k8s_client.Configuration, user_agent: str | None = None) -> k8s_client.ApiClient:
    """Create a fresh ApiClient for ``configuration`` without touching global SDK state."""
    api_client = k8s_client.ApiClient(configuration=configuration)
    if user_agent:
        api_client.user_agent = user_agent
    return api_client


def build_client_pair(descriptor: ConnectionDescriptor) -> ClientPair:
    """Build a per-request client pair from the caller's connection descriptor.

    The caller owns the returned pair and must ``close`` it when the request ends.

    Raises:
        ClientConstructionFailed: If either client cannot be created. The
            failure is logged with the redacted descriptor.
    """
    scratch = tempfile.TemporaryDirectory(prefix="workflow-template-client-")
    try:
        configuration = configuration_from_descriptor(descriptor, Path(scratch.name))
        templates = WorkflowTemplatesClient(new_api_client(configuration, descriptor.user_agent))
    except Exception as e:
        scratch.cleanup()
        log.error(
            "client_construction_failed", client="workflow", rest_config=descriptor.redacted(), error=str(e)
        )
        raise ClientConstructionFailed("workflow", e) from e

    try:
        kube = k8s_client.CoreV1Api(new_api_client(configuration, descriptor.user_agent))
    except Exception as e:
        scratch.cleanup()
        log.error("client_construction_failed", client="kube", rest_config=descriptor.redacted(), error=str(e))
        raise ClientConstructionFailed("kube", e) from e

    return ClientPair(templates=templates, kube=kube, scratch_dir=scratch)


def load_k8s_api_client(config: ServerConfig) -> k8s_client.ApiClient:
    """Create the server's own ApiClient from the service account or a kubeconfig context."""
    if config.in_cluster:
        configuration = k8s_client.Configuration()
        load_incluster_config(client_configuration=configuration)
        return k8s_client.ApiClient(configuration=configuration)
    return new_client_from_config(context=config.kubeconfig_context)


def load_shared_client_pair(config: ServerConfig) -> ClientPair:
    """Build the process-wide client pair once at startup."""
    api_client = load_k8s_api_client(config)
    log.info("shared_client_loaded", in_cluster=config.in_cluster, context=config.kubeconfig_context)
    return ClientPair(templates=WorkflowTemplatesClient(api_client), kube=k8s_client.CoreV1Api(api_client))
