"""Service inspection commands: connectivity, models and status."""

import asyncio
from typing import Any

import click

from ollama_relay.cli.logging import get_cli_logger
from ollama_relay.cli.output import emit_error, emit_inference_error, emit_success
from ollama_relay.cli.registry import CliContext, get_context
from ollama_relay.core.errors.connection import InferenceError
from ollama_relay.core.health import model_available

logger = get_cli_logger()


async def _check(cli_ctx: CliContext) -> tuple[bool, dict[str, Any]]:
    async with cli_ctx.open_client() as client:
        connected = await client.check_connection()
        return connected, client.state.to_dict()


@click.command("check")
@click.pass_context
def check_cmd(ctx: click.Context) -> None:
    """Probe the inference service once and report the connection state."""
    cli_ctx = get_context(ctx)
    connected, state = asyncio.run(_check(cli_ctx))
    if not connected:
        emit_error(
            state["last_error"] or "Connection check failed",
            code="UNAVAILABLE",
            error_type="connection",
            remediation="Start the Ollama service or check the configured URL",
            details={"state": state},
        )
    model = cli_ctx.config.model
    emit_success(
        {
            "connected": True,
            "model_available": model_available(model, state["available_models"]),
            "state": state,
        }
    )


async def _models(cli_ctx: CliContext) -> list[str]:
    async with cli_ctx.open_client() as client:
        return await client.list_models()


@click.command("models")
@click.pass_context
def models_cmd(ctx: click.Context) -> None:
    """List the models the inference service has installed."""
    cli_ctx = get_context(ctx)
    try:
        models = asyncio.run(_models(cli_ctx))
    except InferenceError as error:
        emit_inference_error(error)
    emit_success(
        {
            "models": models,
            "count": len(models),
            "active_model": cli_ctx.config.model,
        }
    )


async def _status(cli_ctx: CliContext) -> dict[str, Any]:
    async with cli_ctx.open_client() as client:
        await client.check_connection()
        status = client.get_status().to_dict()
        status["transport"] = client.fallback.status()
        status["recommendations"] = client.fallback.recommendations()
        return status


@click.command("status")
@click.pass_context
def status_cmd(ctx: click.Context) -> None:
    """Report connection mode, quality, queue and transport diagnostics."""
    cli_ctx = get_context(ctx)
    status = asyncio.run(_status(cli_ctx))
    logger.debug("Service mode: %s", status["mode"])
    emit_success(status)
