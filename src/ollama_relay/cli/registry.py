"""Per-invocation CLI context."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import click
import httpx

from ollama_relay.client import ResilientClient
from ollama_relay.config import ClientConfig


@dataclass
class CliContext:
    """State shared by every command of one invocation.

    ``transport`` replaces the network transport of the HTTP client; tests
    pass an ``httpx.MockTransport`` here.
    """

    config: ClientConfig
    transport: Optional[httpx.AsyncBaseTransport] = None
    verbose: bool = False

    @asynccontextmanager
    async def open_client(self) -> AsyncIterator[ResilientClient]:
        """Yield a client without scheduled probing; closes it on exit."""
        origin = self.config.network.cors_origin
        http = httpx.AsyncClient(
            timeout=self.config.timeout,
            transport=self.transport,
            headers={"Origin": origin} if origin else None,
        )
        client = ResilientClient(self.config, http=http)
        try:
            yield client
        finally:
            await client.close()
            await http.aclose()


def get_context(ctx: click.Context) -> CliContext:
    cli_ctx = ctx.find_object(CliContext)
    if cli_ctx is None:
        raise click.UsageError("CLI context not initialized")
    return cli_ctx
