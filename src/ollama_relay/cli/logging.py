"""CLI logging setup.

Diagnostics go to stderr so stdout stays a single JSON envelope.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("ollama_relay").setLevel(level)
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("ollama_relay.audit").setLevel(logging.ERROR)


def get_cli_logger() -> logging.Logger:
    return logging.getLogger("ollama_relay.cli")
