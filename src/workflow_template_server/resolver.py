"""Per-request client resolution: shared identity or caller-supplied credentials."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from workflow_template_server.clients import ClientPair, build_client_pair, load_shared_client_pair
from workflow_template_server.config import ServerConfig
from workflow_template_server.errors import MissingCredentials
from workflow_template_server.models import ConnectionDescriptor, RequestCredentials


class ClientPairProvider(Protocol):
    """Supplies the client pair one request runs with."""

    async def resolve(self, credentials: RequestCredentials | None) -> ClientPair: ...


class SharedClientProvider:
    """Always hands out the process-wide pair; request credentials are ignored."""

    def __init__(self, pair: ClientPair) -> None:
        self._pair = pair

    async def resolve(self, credentials: RequestCredentials | None) -> ClientPair:
        return self._pair


class PerRequestClientProvider:
    """Builds a fresh pair from each request's own credentials.

    The pair belongs to the calling request alone and is never cached.
    """

    def __init__(self, factory: Callable[[ConnectionDescriptor], ClientPair] = build_client_pair) -> None:
        self._factory = factory

    async def resolve(self, credentials: RequestCredentials | None) -> ClientPair:
        """Resolve the caller's client pair.

        Raises:
            MissingCredentials: No client rest config is attached.
            MalformedCredentials: The rest config cannot be parsed.
            ClientConstructionFailed: A client could not be built from it.
        """
        if credentials is None or not credentials.rest_config:
            raise MissingCredentials()

        descriptor = ConnectionDescriptor.parse(credentials.rest_config)
        descriptor = descriptor.with_bearer_token(credentials.bearer_token)
        return await asyncio.to_thread(self._factory, descriptor)


def build_client_provider(config: ServerConfig) -> ClientPairProvider:
    """Select the provider for this process from ``enable_client_auth``.

    The shared pair is only loaded when it will be used.
    """
    if config.enable_client_auth:
        return PerRequestClientProvider()
    return SharedClientProvider(load_shared_client_pair(config))
