"""CLI commands."""

from ollama_relay.cli.commands.ask import ask_cmd
from ollama_relay.cli.commands.service import check_cmd, models_cmd, status_cmd

__all__ = [
    "ask_cmd",
    "check_cmd",
    "models_cmd",
    "status_cmd",
]
