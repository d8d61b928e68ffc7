"""ollama-relay command line entry point.

Every command prints a single JSON envelope on stdout; logs go to stderr.
"""

import dataclasses
from typing import Optional

import click

from ollama_relay.cli.commands import ask_cmd, check_cmd, models_cmd, status_cmd
from ollama_relay.cli.logging import configure_logging
from ollama_relay.cli.output import emit_error
from ollama_relay.cli.registry import CliContext
from ollama_relay.config import ClientConfig
from ollama_relay.core.errors.config import ConfigurationError


@click.group()
@click.option("--url", "base_url", help="Inference service base URL.")
@click.option("--model", help="Model name to use.")
@click.option("--timeout", type=float, help="Per-attempt timeout in seconds.")
@click.option("--retries", "max_retries", type=int, help="Retries after the first attempt.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr.")
@click.version_option(package_name="ollama-relay")
@click.pass_context
def cli(
    ctx: click.Context,
    base_url: Optional[str],
    model: Optional[str],
    timeout: Optional[float],
    max_retries: Optional[int],
    verbose: bool,
) -> None:
    """Reliable client for a local or remote Ollama service.

    Settings are read from OLLAMA_RELAY_* environment variables; options
    given here take precedence.
    """
    configure_logging(verbose)
    overrides = {
        key: value
        for key, value in (
            ("base_url", base_url),
            ("model", model),
            ("timeout", timeout),
            ("max_retries", max_retries),
        )
        if value is not None
    }

    try:
        if isinstance(ctx.obj, CliContext):
            ctx.obj.verbose = verbose
            if overrides:
                config = dataclasses.replace(ctx.obj.config, **overrides)
                config.raise_for_errors()
                ctx.obj.config = config
        else:
            ctx.obj = CliContext(config=ClientConfig.from_env(**overrides), verbose=verbose)
    except ConfigurationError as exc:
        emit_error(
            str(exc),
            code="CONFIG_ERROR",
            error_type="validation",
            remediation="Fix the OLLAMA_RELAY_* environment variables or command options",
            details={"errors": exc.errors},
        )


cli.add_command(ask_cmd)
cli.add_command(check_cmd)
cli.add_command(models_cmd)
cli.add_command(status_cmd)


if __name__ == "__main__":
    cli()
