"""FormPilot command-line interface."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s  %(message)s"


def configure_logging(verbose: bool) -> None:
    """Send formpilot logs to stderr: DEBUG with --verbose, warnings otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    # Keep the SDK's HTTP chatter out of --verbose output.
    for noisy in ("httpx", "httpcore", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
