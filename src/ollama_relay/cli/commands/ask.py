"""Send a single message to the inference service."""

import asyncio
from typing import Any

import click

from ollama_relay.cli.output import emit_error, emit_inference_error, emit_success
from ollama_relay.cli.registry import CliContext, get_context
from ollama_relay.core.errors.connection import InferenceError
from ollama_relay.core.errors.queue import QueueCapacityError, QueueClearedError
from ollama_relay.core.resilience.models import Priority, StreamChunk


async def _ask(
    cli_ctx: CliContext,
    message: str,
    *,
    stream: bool,
    fallback: bool,
    priority: Priority,
) -> dict[str, Any]:
    async with cli_ctx.open_client() as client:
        if stream:
            if fallback:
                response = client.send_streaming_with_fallback(message, priority=priority)
            else:
                response = client.send_streaming(message, priority=priority)
            async for event in response:
                if isinstance(event, StreamChunk):
                    click.echo(event.text, nl=False, err=True)
            click.echo("", err=True)
            reply = response.text
        elif fallback:
            reply = await client.send_with_fallback(message, priority=priority)
        else:
            reply = await client.send(message, priority=priority)

        return {
            "reply": reply,
            "model": client.state.active_model,
            "connection": client.state.status.value,
            "statistics": client.statistics.to_dict(),
        }


@click.command("ask")
@click.argument("message")
@click.option("--stream", is_flag=True, help="Stream the reply to stderr as it arrives.")
@click.option(
    "--fallback",
    is_flag=True,
    help="Answer with a canned reply when the service is unreachable.",
)
@click.option(
    "--priority",
    type=click.Choice([p.value for p in Priority]),
    default=Priority.NORMAL.value,
    show_default=True,
    help="Queue priority; high bypasses the queue.",
)
@click.pass_context
def ask_cmd(
    ctx: click.Context,
    message: str,
    stream: bool,
    fallback: bool,
    priority: str,
) -> None:
    """Send MESSAGE and print the model's reply."""
    cli_ctx = get_context(ctx)
    try:
        result = asyncio.run(
            _ask(cli_ctx, message, stream=stream, fallback=fallback, priority=Priority(priority))
        )
    except InferenceError as error:
        emit_inference_error(error)
    except (QueueCapacityError, QueueClearedError) as error:
        emit_error(
            str(error),
            code="QUEUE_REJECTED",
            error_type="queue",
            remediation="Retry when the connection quality improves",
        )
    emit_success(result)
